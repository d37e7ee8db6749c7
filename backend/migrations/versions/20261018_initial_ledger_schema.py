"""Initial ledger schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

The offline_events table lives in the local "offline" bind and is created by
create_app()/`flask system init-db`, not by this migration.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(*, updated: bool = False):
    cols = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]
    if updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)
        )
    return cols


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("unit", sa.String(32), nullable=False, server_default="pcs"),
        sa.Column("current_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("average_unit_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("stock_in_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("stock_in_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("purchase_rate_cents", sa.Integer(), nullable=True),
        sa.Column("sale_rate_cents", sa.Integer(), nullable=True),
        sa.Column("low_stock_threshold", sa.Integer(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by", sa.String(128), nullable=True),
        *_timestamps(updated=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku", name="uq_items_sku"),
        sa.UniqueConstraint("barcode", name="uq_items_barcode"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("items", schema=None) as batch_op:
        batch_op.create_index("ix_items_name", ["name"], unique=False)
        batch_op.create_index("ix_items_archived", ["is_archived"], unique=False)
        batch_op.create_index("ix_items_category_id", ["category_id"], unique=False)

    op.create_table(
        "vendors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("tax_number", sa.String(64), nullable=True),
        sa.Column("outstanding_balance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_purchases_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_by", sa.String(128), nullable=True),
        *_timestamps(updated=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("vendors", schema=None) as batch_op:
        batch_op.create_index("ix_vendors_active", ["is_active"], unique=False)

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("outstanding_balance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_purchases_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_by", sa.String(128), nullable=True),
        *_timestamps(updated=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("phone", name="uq_customers_phone"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.create_index("ix_customers_active", ["is_active"], unique=False)

    op.create_table(
        "purchases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_number", sa.String(64), nullable=False),
        sa.Column("client_ref", sa.String(64), nullable=True),
        sa.Column("bill_number", sa.String(64), nullable=True),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("vendor_name", sa.String(255), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="unpaid"),
        sa.Column("upfront_paid_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("paid_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("pending_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("purchase_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(128), nullable=True),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("purchase_number", name="uq_purchases_number"),
        sa.UniqueConstraint("client_ref", name="uq_purchases_client_ref"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("purchases", schema=None) as batch_op:
        batch_op.create_index("ix_purchases_vendor_id", ["vendor_id"], unique=False)
        batch_op.create_index("ix_purchases_payment_status", ["payment_status"], unique=False)
        batch_op.create_index("ix_purchases_vendor_date", ["vendor_id", "purchase_date"], unique=False)

    op.create_table(
        "purchase_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("purchase_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("purchase_rate_cents", sa.Integer(), nullable=False),
        sa.Column("sale_rate_cents", sa.Integer(), nullable=True),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shelf_location", sa.String(64), nullable=True),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("purchase_lines", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_lines_purchase_id", ["purchase_id"], unique=False)
        batch_op.create_index("ix_purchase_lines_item_id", ["item_id"], unique=False)

    op.create_table(
        "journal_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("direction", sa.String(16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_value_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("movement_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("counterparty_name", sa.String(255), nullable=True),
        sa.Column("reference_type", sa.String(32), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("reference_number", sa.String(64), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shelf_location", sa.String(64), nullable=True),
        sa.Column("created_by", sa.String(128), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="ck_journal_quantity_positive"),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("journal_entries", schema=None) as batch_op:
        batch_op.create_index("ix_journal_entries_item_id", ["item_id"], unique=False)
        batch_op.create_index("ix_journal_entries_direction", ["direction"], unique=False)
        batch_op.create_index("ix_journal_entries_reference_number", ["reference_number"], unique=False)
        batch_op.create_index("ix_journal_item_date", ["item_id", "movement_date"], unique=False)
        batch_op.create_index("ix_journal_reference", ["reference_type", "reference_id"], unique=False)

    op.create_table(
        "vendor_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("purchase_id", sa.Integer(), nullable=True),
        sa.Column("client_ref", sa.String(64), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default="cash"),
        sa.Column("reference_number", sa.String(64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(128), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_vendor_payments_amount_positive"),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"]),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchases.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("client_ref", name="uq_vendor_payments_client_ref"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("vendor_payments", schema=None) as batch_op:
        batch_op.create_index("ix_vendor_payments_vendor_id", ["vendor_id"], unique=False)
        batch_op.create_index("ix_vendor_payments_vendor_date", ["vendor_id", "payment_date"], unique=False)

    op.create_table(
        "bill_types",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("affects_inventory", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("affects_accounting", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "pos_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transaction_number", sa.String(64), nullable=False),
        sa.Column("client_ref", sa.String(64), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_method", sa.String(16), nullable=False, server_default="cash"),
        sa.Column("amount_tendered_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("change_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("bill_type", sa.String(32), nullable=False, server_default="regular"),
        sa.Column("affects_inventory", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("affects_accounting", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_credit_sale", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="completed"),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("void_reason", sa.String(255), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voided_by", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cashier_id", sa.String(128), nullable=True),
        *_timestamps(updated=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_number", name="uq_pos_transactions_number"),
        sa.UniqueConstraint("client_ref", name="uq_pos_transactions_client_ref"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("pos_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_pos_transactions_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_pos_transactions_status", ["status"], unique=False)
        batch_op.create_index("ix_pos_transactions_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "pos_transaction_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("pos_transaction_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("item_name", sa.String(255), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["pos_transaction_id"], ["pos_transactions.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("pos_transaction_lines", schema=None) as batch_op:
        batch_op.create_index("ix_pos_transaction_lines_pos_transaction_id", ["pos_transaction_id"], unique=False)
        batch_op.create_index("ix_pos_transaction_lines_item_id", ["item_id"], unique=False)

    op.create_table(
        "customer_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("pos_transaction_id", sa.Integer(), nullable=True),
        sa.Column("client_ref", sa.String(64), nullable=True),
        sa.Column("type", sa.String(16), nullable=False, server_default="payment"),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default="cash"),
        sa.Column("reference_number", sa.String(64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.String(128), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_customer_payments_amount_positive"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["pos_transaction_id"], ["pos_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("client_ref", name="uq_customer_payments_client_ref"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("customer_payments", schema=None) as batch_op:
        batch_op.create_index("ix_customer_payments_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_customer_payments_pos_transaction_id", ["pos_transaction_id"], unique=False)
        batch_op.create_index("ix_customer_payments_customer_date", ["customer_id", "payment_date"], unique=False)

    op.create_table(
        "pos_returns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("return_number", sa.String(64), nullable=False),
        sa.Column("original_transaction_id", sa.Integer(), nullable=False),
        sa.Column("original_transaction_number", sa.String(64), nullable=False),
        sa.Column("total_refund_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("refund_method", sa.String(16), nullable=False, server_default="cash"),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("created_by", sa.String(128), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["original_transaction_id"], ["pos_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("return_number", name="uq_pos_returns_number"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("pos_returns", schema=None) as batch_op:
        batch_op.create_index("ix_pos_returns_original_transaction_id", ["original_transaction_id"], unique=False)

    op.create_table(
        "pos_return_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("pos_return_id", sa.Integer(), nullable=False),
        sa.Column("original_line_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("refund_cents", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["pos_return_id"], ["pos_returns.id"]),
        sa.ForeignKeyConstraint(["original_line_id"], ["pos_transaction_lines.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("pos_return_lines", schema=None) as batch_op:
        batch_op.create_index("ix_pos_return_lines_pos_return_id", ["pos_return_id"], unique=False)
        batch_op.create_index("ix_pos_return_lines_original_line_id", ["original_line_id"], unique=False)
        batch_op.create_index("ix_pos_return_lines_item_id", ["item_id"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("document_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_document_sequences_document_type", ["document_type"], unique=False)


def downgrade():
    for table in (
        "document_sequences",
        "pos_return_lines",
        "pos_returns",
        "customer_payments",
        "pos_transaction_lines",
        "pos_transactions",
        "bill_types",
        "vendor_payments",
        "journal_entries",
        "purchase_lines",
        "purchases",
        "customers",
        "vendors",
        "items",
        "categories",
    ):
        op.drop_table(table)
