"""Storefront initial schema: members, catalog, orders, rewards, points, visitors

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("birthday", sa.String(10), nullable=True),
        sa.Column("how_did_you_hear", sa.String(255), nullable=True),
        sa.Column("role", sa.String(16), nullable=False, server_default="user"),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("reward_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("otp_hash", sa.String(255), nullable=True),
        sa.Column("otp_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("reward_points >= 0", name="ck_users_reward_points_non_negative"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("phone", name="uq_users_phone"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.create_index("ix_users_phone", ["phone"], unique=False)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(255), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_session_tokens_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_session_tokens"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_token_hash", ["token_hash"], unique=True)
        batch_op.create_index("ix_session_tokens_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_session_tokens_expires_at", ["expires_at"], unique=False)
        batch_op.create_index("ix_session_tokens_is_revoked", ["is_revoked"], unique=False)
        batch_op.create_index("ix_session_tokens_user_active", ["user_id", "is_revoked"], unique=False)

    op.create_table(
        "login_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("identifier", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(32), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_login_events_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_login_events"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("login_events", schema=None) as batch_op:
        batch_op.create_index(
            "ix_login_events_identifier_type_occurred",
            ["identifier", "event_type", "occurred_at"],
            unique=False,
        )
        batch_op.create_index("ix_login_events_user_occurred", ["user_id", "occurred_at"], unique=False)

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_categories"),
        sa.UniqueConstraint("name", name="uq_categories_name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("stock", sa.Integer(), nullable=True),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("stock IS NULL OR stock >= 0", name="ck_products_stock_non_negative"),
        sa.CheckConstraint("price_cents >= 0", name="ck_products_price_non_negative"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], name="fk_products_category_id_categories"),
        sa.PrimaryKeyConstraint("id", name="pk_products"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_category_id", ["category_id"], unique=False)
        batch_op.create_index("ix_products_category_active", ["category_id", "is_active"], unique=False)

    op.create_table(
        "order_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("day", sa.String(6), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_order_sequences"),
        sa.UniqueConstraint("day", name="uq_order_sequences_day"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("tax_cents", sa.Integer(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("stock_released", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("shipping_street", sa.String(255), nullable=True),
        sa.Column("shipping_city", sa.String(128), nullable=True),
        sa.Column("shipping_state", sa.String(64), nullable=True),
        sa.Column("shipping_zip_code", sa.String(16), nullable=True),
        sa.Column("shipping_country", sa.String(64), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default="pay_at_pickup"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=True, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint(
            "total_cents = subtotal_cents + tax_cents",
            name="ck_orders_total_is_subtotal_plus_tax",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_orders_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_orders"),
        sa.UniqueConstraint("order_number", name="uq_orders_order_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_orders_user_created", ["user_id", "created_at"], unique=False)
        batch_op.create_index("ix_orders_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("image_url", sa.String(1024), nullable=True),
        sa.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        sa.ForeignKeyConstraint(
            ["order_id"], ["orders.id"], name="fk_order_items_order_id_orders", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["product_id"], ["products.id"], name="fk_order_items_product_id_products", ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_order_items"),
        sa.UniqueConstraint("order_id", "position", name="uq_order_items_order_position"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_items", schema=None) as batch_op:
        batch_op.create_index("ix_order_items_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "reward_tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("reward", sa.Integer(), nullable=False),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("reward >= 0", name="ck_reward_tasks_reward_non_negative"),
        sa.ForeignKeyConstraint(
            ["created_by_user_id"], ["users.id"], name="fk_reward_tasks_created_by_user_id_users"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_reward_tasks"),
        sa.UniqueConstraint("task_id", name="uq_reward_tasks_task_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("reward_tasks", schema=None) as batch_op:
        batch_op.create_index("ix_reward_tasks_visible_order", ["is_visible", "sort_order"], unique=False)

    op.create_table(
        "reward_claims",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.String(64), nullable=False),
        sa.Column("task_title", sa.String(255), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("proof_type", sa.String(16), nullable=False),
        sa.Column("proof_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("proof_image_url", sa.String(1024), nullable=True),
        sa.Column("proof_audio_url", sa.String(1024), nullable=True),
        sa.Column("proof_video_url", sa.String(1024), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("approved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("amount >= 0", name="ck_reward_claims_amount_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_reward_claims_user_id_users"),
        sa.ForeignKeyConstraint(
            ["approved_by_user_id"], ["users.id"], name="fk_reward_claims_approved_by_user_id_users"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_reward_claims"),
        sa.UniqueConstraint("user_id", "task_id", name="uq_reward_claims_user_task"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("reward_claims", schema=None) as batch_op:
        batch_op.create_index("ix_reward_claims_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_reward_claims_user_status", ["user_id", "status"], unique=False)
        batch_op.create_index("ix_reward_claims_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "points_adjustments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("adjusted_by_user_id", sa.Integer(), nullable=False),
        sa.Column("adjustment_type", sa.String(16), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=False),
        sa.Column("custom_reason", sa.String(255), nullable=False, server_default=""),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("reward_task_id", sa.Integer(), nullable=True),
        sa.Column("reward_claim_id", sa.Integer(), nullable=True),
        sa.Column("previous_balance", sa.Integer(), nullable=False),
        sa.Column("new_balance", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("points > 0", name="ck_points_adjustments_points_positive"),
        sa.CheckConstraint("new_balance >= 0", name="ck_points_adjustments_new_balance_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_points_adjustments_user_id_users"),
        sa.ForeignKeyConstraint(
            ["adjusted_by_user_id"], ["users.id"], name="fk_points_adjustments_adjusted_by_user_id_users"
        ),
        sa.ForeignKeyConstraint(
            ["reward_task_id"], ["reward_tasks.id"],
            name="fk_points_adjustments_reward_task_id_reward_tasks", ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["reward_claim_id"], ["reward_claims.id"], name="fk_points_adjustments_reward_claim_id_reward_claims"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_points_adjustments"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("points_adjustments", schema=None) as batch_op:
        batch_op.create_index("ix_points_adjustments_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_points_adjustments_adjusted_by_user_id", ["adjusted_by_user_id"], unique=False)
        batch_op.create_index("ix_points_adjustments_adjustment_type", ["adjustment_type"], unique=False)
        batch_op.create_index("ix_points_adjustments_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_points_adjustments_user_created", ["user_id", "created_at"], unique=False)

    op.create_table(
        "visitors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("is_member", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("visit_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_visit", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=True, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_visitors_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_visitors"),
        sa.UniqueConstraint("phone", name="uq_visitors_phone"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("visitors", schema=None) as batch_op:
        batch_op.create_index("ix_visitors_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_visitors_last_visit", ["last_visit"], unique=False)

    op.create_table(
        "visitor_visits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("visitor_id", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("checked_in_by", sa.String(8), nullable=False, server_default="self"),
        sa.Column("admin_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(
            ["visitor_id"], ["visitors.id"], name="fk_visitor_visits_visitor_id_visitors", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["admin_user_id"], ["users.id"], name="fk_visitor_visits_admin_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_visitor_visits"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("visitor_visits", schema=None) as batch_op:
        batch_op.create_index("ix_visitor_visits_visitor_timestamp", ["visitor_id", "timestamp"], unique=False)


def downgrade():
    for table in (
        "visitor_visits",
        "visitors",
        "points_adjustments",
        "reward_claims",
        "reward_tasks",
        "order_items",
        "orders",
        "order_sequences",
        "products",
        "categories",
        "login_events",
        "session_tokens",
        "users",
    ):
        op.drop_table(table)
