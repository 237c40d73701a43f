"""Row-level security DDL for the creator schema.

All statements are idempotent so they can run from both init_db() and the
Alembic migrations. Policies compare the row's owner column against
current_setting('app.current_user_id'), which get_user_session() sets per
connection. get_system_session() sets app.rls_bypass = 'on' instead.
"""

from __future__ import annotations

from src.copilot.core.database import CREATOR_SCHEMA

CURRENT_USER = "current_setting('app.current_user_id', true)"
BYPASS = "current_setting('app.rls_bypass', true) = 'on'"

# Tables whose rows belong to exactly one user, keyed by owner column
OWNED_TABLES: dict[str, str] = {
    "profiles": "id",
    "generated_content": "user_id",
    "voiceovers": "user_id",
    "video_projects": "user_id",
    "subscriptions": "user_id",
    "invoices": "user_id",
    "oauth_tokens": "user_id",
    "analytics_snapshots": "user_id",
}

UPDATED_AT_TABLES = (
    "profiles",
    "video_projects",
    "campaigns",
    "campaign_applications",
    "subscriptions",
    "invoices",
    "oauth_tokens",
)


def _owner(column: str) -> str:
    return f"({column}::text = {CURRENT_USER} OR {BYPASS})"


def _policy(table: str, name: str, body: str) -> list[str]:
    return [
        f'DROP POLICY IF EXISTS {name} ON {CREATOR_SCHEMA}."{table}"',
        f'CREATE POLICY {name} ON {CREATOR_SCHEMA}."{table}" {body}',
    ]


def _enable(table: str) -> list[str]:
    return [
        f'ALTER TABLE {CREATOR_SCHEMA}."{table}" ENABLE ROW LEVEL SECURITY',
        f'ALTER TABLE {CREATOR_SCHEMA}."{table}" FORCE ROW LEVEL SECURITY',
    ]


def row_level_security_statements() -> list[str]:
    """Return the full list of RLS, trigger and helper-function statements."""
    statements: list[str] = []

    # ── Owned tables ────────────────────────────────────────────────────
    for table, column in OWNED_TABLES.items():
        statements += _enable(table)
        statements += _policy(
            table,
            "owner_access",
            f"FOR ALL USING {_owner(column)} WITH CHECK {_owner(column)}",
        )

    # ── Campaigns: public read, brand-owned writes ──────────────────────
    statements += _enable("campaigns")
    statements += _policy("campaigns", "public_read", "FOR SELECT USING (true)")
    statements += _policy(
        "campaigns",
        "brand_insert",
        f"FOR INSERT WITH CHECK {_owner('brand_id')}",
    )
    statements += _policy(
        "campaigns",
        "brand_update",
        f"FOR UPDATE USING {_owner('brand_id')} WITH CHECK {_owner('brand_id')}",
    )
    statements += _policy(
        "campaigns",
        "brand_delete",
        f"FOR DELETE USING {_owner('brand_id')}",
    )

    # ── Campaign applications: applicant or campaign brand ──────────────
    brand_of_campaign = (
        f"campaign_id IN (SELECT id FROM {CREATOR_SCHEMA}.campaigns "
        f"WHERE brand_id::text = {CURRENT_USER})"
    )
    statements += _enable("campaign_applications")
    statements += _policy(
        "campaign_applications",
        "participant_read",
        f"FOR SELECT USING (creator_id::text = {CURRENT_USER} OR {brand_of_campaign} OR {BYPASS})",
    )
    statements += _policy(
        "campaign_applications",
        "creator_insert",
        f"FOR INSERT WITH CHECK {_owner('creator_id')}",
    )
    statements += _policy(
        "campaign_applications",
        "brand_review",
        f"FOR UPDATE USING ({brand_of_campaign} OR {BYPASS}) "
        f"WITH CHECK ({brand_of_campaign} OR {BYPASS})",
    )

    # ── updated_at triggers ─────────────────────────────────────────────
    statements.append(f"""
        CREATE OR REPLACE FUNCTION {CREATOR_SCHEMA}.set_updated_at() RETURNS trigger AS $$
        BEGIN
            NEW.updated_at = now();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """)
    for table in UPDATED_AT_TABLES:
        statements.append(f'DROP TRIGGER IF EXISTS trg_{table}_updated_at ON {CREATOR_SCHEMA}."{table}"')
        statements.append(
            f'CREATE TRIGGER trg_{table}_updated_at BEFORE UPDATE ON {CREATOR_SCHEMA}."{table}" '
            f"FOR EACH ROW EXECUTE FUNCTION {CREATOR_SCHEMA}.set_updated_at()"
        )

    # ── is_pro derived from tier and status ─────────────────────────────
    statements.append(f"""
        CREATE OR REPLACE FUNCTION {CREATOR_SCHEMA}.set_is_pro() RETURNS trigger AS $$
        BEGIN
            NEW.is_pro = (NEW.subscription_tier IN ('pro', 'studio')
                          AND NEW.subscription_status IN ('active', 'trialing'));
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """)
    statements.append(f"DROP TRIGGER IF EXISTS trg_profiles_is_pro ON {CREATOR_SCHEMA}.profiles")
    statements.append(
        f"CREATE TRIGGER trg_profiles_is_pro BEFORE INSERT OR UPDATE OF subscription_tier, subscription_status "
        f"ON {CREATOR_SCHEMA}.profiles FOR EACH ROW EXECUTE FUNCTION {CREATOR_SCHEMA}.set_is_pro()"
    )

    return statements
