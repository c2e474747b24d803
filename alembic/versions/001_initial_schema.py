"""Initial schema: users, sessions, items, payments, packs, credits, webhooks, schedules, page tracking, AI usage, brand monitoring.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("name", sa.String(128), nullable=True),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column("role", sa.String(16), server_default="user", nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("credits_balance", sa.Float(), server_default="0", nullable=False),
        sa.Column("trial_credits_granted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("trial_credits_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signup_ip", sa.String(64), nullable=True),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_token", sa.String(128), nullable=True),
        sa.Column("verification_token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reset_token", sa.String(128), nullable=True),
        sa.Column("reset_token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("preferred_ai_model", sa.String(100), server_default="google/gemini-2.5-flash", nullable=False),
        sa.Column("business_sector", sa.String(50), nullable=True),
        sa.Column("company_size", sa.String(20), nullable=True),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_signup_ip", "users", ["signup_ip"])
    op.create_index("ix_users_verification_token", "users", ["verification_token"])
    op.create_index("ix_users_reset_token", "users", ["reset_token"])

    # --- scraping_sessions ---
    op.create_table(
        "scraping_sessions",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("scrape_type", sa.String(30), server_default="marketplace", nullable=False),
        sa.Column("url", sa.String(1024), nullable=True),
        sa.Column("results_limit", sa.Integer(), server_default="3", nullable=False),
        sa.Column("page_urls", sa.JSON(), nullable=True),
        sa.Column("extraction_config", sa.JSON(), nullable=True),
        sa.Column("sub_runs", sa.JSON(), nullable=True),
        sa.Column("item_counts", sa.JSON(), nullable=True),
        sa.Column("ai_results", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("actor_run_id", sa.String(64), nullable=True),
        sa.Column("dataset_id", sa.String(64), nullable=True),
        sa.Column("is_paid", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_trial", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("pack_id", sa.String(64), nullable=True),
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column("payment_intent_id", sa.String(128), nullable=True),
        sa.Column("preview_items", sa.JSON(), nullable=True),
        sa.Column("total_items", sa.Integer(), server_default="0", nullable=False),
        sa.Column("has_data", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("download_url", sa.String(1024), nullable=True),
        sa.Column("download_token", sa.String(128), nullable=True),
        sa.Column("download_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scraping_sessions_user_id", "scraping_sessions", ["user_id"])
    op.create_index("ix_scraping_sessions_status", "scraping_sessions", ["status"])
    op.create_index("ix_scraping_sessions_actor_run_id", "scraping_sessions", ["actor_run_id"])
    op.create_index("ix_scraping_sessions_created_at", "scraping_sessions", ["created_at"])

    # --- scraped_items ---
    op.create_table(
        "scraped_items",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("item_type", sa.String(30), server_default="marketplace", nullable=False),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("price", sa.String(100), nullable=True),
        sa.Column("price_amount", sa.Float(), nullable=True),
        sa.Column("currency", sa.String(10), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("url", sa.String(1024), nullable=True),
        sa.Column("image_url", sa.String(1024), nullable=True),
        sa.Column("images", sa.JSON(), nullable=True),
        sa.Column("posted_at", sa.String(64), nullable=True),
        sa.Column("raw_data", sa.JSON(), nullable=True),
        sa.Column("is_favorite", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("user_notes", sa.Text(), nullable=True),
        sa.Column("position", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["scraping_sessions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scraped_items_session_id", "scraped_items", ["session_id"])
    op.create_index("ix_scraped_items_user_id", "scraped_items", ["user_id"])
    op.create_index("ix_scraped_items_item_type", "scraped_items", ["item_type"])
    op.create_index("ix_scraped_items_price_amount", "scraped_items", ["price_amount"])

    # --- payments ---
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("provider", sa.String(16), server_default="stripe", nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("pack_id", sa.String(64), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.String(128), nullable=True),
        sa.Column("stripe_checkout_id", sa.String(128), nullable=True),
        sa.Column("amount", sa.Float(), server_default="0", nullable=False),
        sa.Column("currency", sa.String(8), server_default="eur", nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("credits_purchased", sa.Float(), server_default="0", nullable=False),
        sa.Column("failure_code", sa.String(64), nullable=True),
        sa.Column("failure_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["session_id"], ["scraping_sessions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_payment_intent_id"),
    )
    op.create_index("ix_payments_user_id", "payments", ["user_id"])
    op.create_index("ix_payments_session_id", "payments", ["session_id"])

    # --- mvola_payments ---
    op.create_table(
        "mvola_payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("pack_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(10), server_default="Ar", nullable=False),
        sa.Column("customer_msisdn", sa.Text(), nullable=False),
        sa.Column("client_transaction_id", sa.String(64), nullable=False),
        sa.Column("server_correlation_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(16), server_default="pending", nullable=False),
        sa.Column("attempts", sa.Integer(), server_default="0", nullable=False),
        sa.Column("status_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["session_id"], ["scraping_sessions.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("client_transaction_id"),
        sa.UniqueConstraint("server_correlation_id"),
    )
    op.create_index("ix_mvola_payments_user_id", "mvola_payments", ["user_id"])
    op.create_index("ix_mvola_payments_session_id", "mvola_payments", ["session_id"])

    # --- downloads ---
    op.create_table(
        "downloads",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("format", sa.String(20), nullable=False),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("scraped_url", sa.String(1024), nullable=True),
        sa.Column("downloaded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["session_id"], ["scraping_sessions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_downloads_user_id", "downloads", ["user_id"])
    op.create_index("ix_downloads_session_id", "downloads", ["session_id"])

    # --- packs ---
    op.create_table(
        "packs",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("nb_downloads", sa.Integer(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("price_eur", sa.Integer(), nullable=True),
        sa.Column("currency", sa.String(8), server_default="eur", nullable=False),
        sa.Column("price_label", sa.String(64), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("popular", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("stripe_price_id", sa.String(128), server_default="", nullable=False),
        sa.Column("stripe_price_id_mga", sa.String(128), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- credit_transactions ---
    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("balance_after", sa.Float(), nullable=False),
        sa.Column("transaction_type", sa.String(32), nullable=False),
        sa.Column("service_type", sa.String(64), nullable=True),
        sa.Column("reference_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(16), server_default="completed", nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_credit_transactions_user_id", "credit_transactions", ["user_id"])
    op.create_index("ix_credit_transactions_reference_id", "credit_transactions", ["reference_id"])
    op.create_index("ix_credit_transactions_created_at", "credit_transactions", ["created_at"])

    # --- webhook_events ---
    op.create_table(
        "webhook_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("provider", sa.String(16), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(128), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("provider", "event_id", name="uq_webhook_provider_event"),
    )

    # --- scheduled_scrapes ---
    op.create_table(
        "scheduled_scrapes",
        sa.Column("id", sa.String(40), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("scrape_type", sa.String(30), nullable=False),
        sa.Column("target_url", sa.Text(), nullable=False),
        sa.Column("frequency", sa.String(20), server_default="weekly", nullable=False),
        sa.Column("next_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("is_paused", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("pause_reason", sa.String(200), nullable=True),
        sa.Column("config", sa.JSON(), nullable=False),
        sa.Column("notification_settings", sa.JSON(), nullable=False),
        sa.Column("credits_per_run", sa.Float(), server_default="1", nullable=False),
        sa.Column("total_credits_spent", sa.Float(), server_default="0", nullable=False),
        sa.Column("total_runs", sa.Integer(), server_default="0", nullable=False),
        sa.Column("successful_runs", sa.Integer(), server_default="0", nullable=False),
        sa.Column("failed_runs", sa.Integer(), server_default="0", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scheduled_scrapes_user_id", "scheduled_scrapes", ["user_id"])
    op.create_index("ix_scheduled_scrapes_next_run_at", "scheduled_scrapes", ["next_run_at"])

    op.create_table(
        "scheduled_scrape_executions",
        sa.Column("id", sa.String(40), nullable=False),
        sa.Column("scheduled_scrape_id", sa.String(40), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), server_default="running", nullable=False),
        sa.Column("items_scraped", sa.Integer(), server_default="0", nullable=False),
        sa.Column("credits_used", sa.Float(), server_default="0", nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("changes_detected", sa.JSON(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["scheduled_scrape_id"], ["scheduled_scrapes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_scheduled_scrape_executions_scheduled_scrape_id", "scheduled_scrape_executions", ["scheduled_scrape_id"]
    )
    op.create_index("ix_scheduled_scrape_executions_session_id", "scheduled_scrape_executions", ["session_id"])

    op.create_table(
        "scheduled_scrape_changes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("execution_id", sa.String(40), nullable=False),
        sa.Column("change_type", sa.String(50), nullable=False),
        sa.Column("change_category", sa.String(50), nullable=True),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("severity", sa.String(20), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["execution_id"], ["scheduled_scrape_executions.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scheduled_scrape_changes_execution_id", "scheduled_scrape_changes", ["execution_id"])

    op.create_table(
        "scheduled_scrape_notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("scheduled_scrape_id", sa.String(40), nullable=False),
        sa.Column("execution_id", sa.String(40), nullable=True),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("channel", sa.String(20), server_default="email", nullable=False),
        sa.Column("recipient", sa.String(200), nullable=True),
        sa.Column("subject", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("sent", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["scheduled_scrape_id"], ["scheduled_scrapes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_scheduled_scrape_notifications_scheduled_scrape_id",
        "scheduled_scrape_notifications",
        ["scheduled_scrape_id"],
    )

    # --- facebook page tracking ---
    op.create_table(
        "facebook_page_tracking",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("page_url", sa.String(1024), nullable=False),
        sa.Column("page_name", sa.Text(), nullable=True),
        sa.Column("last_scraped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_post_id", sa.Text(), nullable=True),
        sa.Column("last_post_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_posts_scraped", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_sessions", sa.Integer(), server_default="0", nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "page_url", name="uq_tracking_user_page"),
    )
    op.create_index("ix_facebook_page_tracking_user_id", "facebook_page_tracking", ["user_id"])

    op.create_table(
        "facebook_scraped_posts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tracking_id", sa.Integer(), nullable=False),
        sa.Column("post_id", sa.String(255), nullable=False),
        sa.Column("post_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("scraped_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["tracking_id"], ["facebook_page_tracking.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tracking_id", "post_id", name="uq_scraped_post"),
    )
    op.create_index("ix_facebook_scraped_posts_tracking_id", "facebook_scraped_posts", ["tracking_id"])
    op.create_index("ix_facebook_scraped_posts_post_id", "facebook_scraped_posts", ["post_id"])

    # --- ai_usage_logs ---
    op.create_table(
        "ai_usage_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(255), nullable=True),
        sa.Column("generation_id", sa.String(255), nullable=False),
        sa.Column("model", sa.String(255), nullable=False),
        sa.Column("agent_type", sa.String(50), server_default="other", nullable=False),
        sa.Column("tokens_prompt", sa.Integer(), server_default="0", nullable=False),
        sa.Column("tokens_completion", sa.Integer(), server_default="0", nullable=False),
        sa.Column("tokens_total", sa.Integer(), server_default="0", nullable=False),
        sa.Column("cost_usd", sa.Float(), server_default="0", nullable=False),
        sa.Column("credits_charged", sa.Float(), server_default="0", nullable=False),
        sa.Column("page_name", sa.String(255), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ai_usage_logs_user_id", "ai_usage_logs", ["user_id"])
    op.create_index("ix_ai_usage_logs_session_id", "ai_usage_logs", ["session_id"])
    op.create_index("ix_ai_usage_logs_model", "ai_usage_logs", ["model"])
    op.create_index("ix_ai_usage_logs_created_at", "ai_usage_logs", ["created_at"])

    # --- brand monitoring ---
    op.create_table(
        "brand_keywords",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("keyword", sa.String(100), nullable=False),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("email_alerts", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("mentions_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("last_mention_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "keyword", name="uq_brand_keyword_user"),
    )
    op.create_index("ix_brand_keywords_user_id", "brand_keywords", ["user_id"])

    op.create_table(
        "brand_mentions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=True),
        sa.Column("brand_keywords", sa.JSON(), nullable=True),
        sa.Column("mention_type", sa.String(20), nullable=False),
        sa.Column("confidence_score", sa.Float(), server_default="0", nullable=False),
        sa.Column("sentiment", sa.String(10), server_default="neutral", nullable=False),
        sa.Column("sentiment_score", sa.Float(), server_default="50", nullable=False),
        sa.Column("priority_level", sa.String(10), server_default="medium", nullable=False),
        sa.Column("suggested_response_time", sa.Integer(), server_default="60", nullable=False),
        sa.Column("post_url", sa.String(1024), nullable=True),
        sa.Column("comment_text", sa.Text(), nullable=False),
        sa.Column("comment_author", sa.String(255), nullable=True),
        sa.Column("comment_likes", sa.Integer(), server_default="0", nullable=False),
        sa.Column("comment_posted_at", sa.String(64), nullable=True),
        sa.Column("page_name", sa.String(255), nullable=True),
        sa.Column("post_type", sa.String(20), server_default="post", nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), server_default="new", nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_brand_mentions_user_id", "brand_mentions", ["user_id"])
    op.create_index("ix_brand_mentions_session_id", "brand_mentions", ["session_id"])
    op.create_index("ix_brand_mentions_priority_level", "brand_mentions", ["priority_level"])
    op.create_index("ix_brand_mentions_status", "brand_mentions", ["status"])
    op.create_index("ix_brand_mentions_created_at", "brand_mentions", ["created_at"])


def downgrade() -> None:
    op.drop_table("brand_mentions")
    op.drop_table("brand_keywords")
    op.drop_table("ai_usage_logs")
    op.drop_table("facebook_scraped_posts")
    op.drop_table("facebook_page_tracking")
    op.drop_table("scheduled_scrape_notifications")
    op.drop_table("scheduled_scrape_changes")
    op.drop_table("scheduled_scrape_executions")
    op.drop_table("scheduled_scrapes")
    op.drop_table("webhook_events")
    op.drop_table("credit_transactions")
    op.drop_table("packs")
    op.drop_table("downloads")
    op.drop_table("mvola_payments")
    op.drop_table("payments")
    op.drop_table("scraped_items")
    op.drop_table("scraping_sessions")
    op.drop_table("users")
