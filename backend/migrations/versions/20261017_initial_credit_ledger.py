"""Initial schema: catalog boundary, technical service credit ledger, system logs

Revision ID: 20261017_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=True),
        sa.Column("profit_margin_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("cost_price_cents", sa.Integer(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("sale_price_cents", sa.Integer(), nullable=True),
        sa.Column("stock_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("low_stock_threshold", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_category_id", ["category_id"], unique=False)
        batch_op.create_index("ix_products_category_active", ["category_id", "is_active"], unique=False)

    op.create_table(
        "technical_services",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("contact_person", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("tax_number", sa.String(32), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("credit_limit_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("current_balance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("technical_services", schema=None) as batch_op:
        batch_op.create_index("ix_technical_services_is_active", ["is_active"], unique=False)
        batch_op.create_index("ix_technical_services_active_name", ["is_active", "name"], unique=False)

    op.create_table(
        "technical_service_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("technical_service_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("entered_amount_cents", sa.Integer(), nullable=False),
        sa.Column("balance_before_cents", sa.Integer(), nullable=False),
        sa.Column("balance_after_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("reference_number", sa.String(128), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("created_by", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["technical_service_id"], ["technical_services.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("technical_service_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_technical_service_transactions_technical_service_id", ["technical_service_id"], unique=False)
        batch_op.create_index("ix_technical_service_transactions_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index("ix_technical_service_transactions_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_ts_transactions_service_created", ["technical_service_id", "created_at"], unique=False)

    op.create_table(
        "technical_service_sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("technical_service_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("price_source", sa.String(16), nullable=False),
        sa.Column("sale_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["technical_service_id"], ["technical_services.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("technical_service_sales", schema=None) as batch_op:
        batch_op.create_index("ix_technical_service_sales_technical_service_id", ["technical_service_id"], unique=False)
        batch_op.create_index("ix_technical_service_sales_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_technical_service_sales_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_ts_sales_service_created", ["technical_service_id", "created_at"], unique=False)

    op.create_table(
        "technical_service_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("technical_service_id", sa.Integer(), nullable=False),
        sa.Column("action_type", sa.String(16), nullable=False),
        sa.Column("description", sa.String(512), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=True),
        sa.Column("previous_balance_cents", sa.Integer(), nullable=True),
        sa.Column("new_balance_cents", sa.Integer(), nullable=True),
        sa.Column("reference", sa.String(128), nullable=True),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["technical_service_id"], ["technical_services.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["transaction_id"], ["technical_service_transactions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sale_id"], ["technical_service_sales.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("technical_service_history", schema=None) as batch_op:
        batch_op.create_index("ix_technical_service_history_technical_service_id", ["technical_service_id"], unique=False)
        batch_op.create_index("ix_technical_service_history_action_type", ["action_type"], unique=False)
        batch_op.create_index("ix_technical_service_history_transaction_id", ["transaction_id"], unique=False)
        batch_op.create_index("ix_technical_service_history_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_technical_service_history_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_ts_history_service_created", ["technical_service_id", "created_at"], unique=False)

    op.create_table(
        "system_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(128), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("description", sa.String(512), nullable=False),
        sa.Column("old_values", sa.Text(), nullable=True),
        sa.Column("new_values", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("system_logs", schema=None) as batch_op:
        batch_op.create_index("ix_system_logs_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_system_logs_action", ["action"], unique=False)
        batch_op.create_index("ix_system_logs_entity", ["entity_type", "entity_id"], unique=False)
        batch_op.create_index("ix_system_logs_created", ["created_at"], unique=False)


def downgrade():
    op.drop_table("system_logs")
    op.drop_table("technical_service_history")
    op.drop_table("technical_service_sales")
    op.drop_table("technical_service_transactions")
    op.drop_table("technical_services")
    op.drop_table("products")
    op.drop_table("categories")
