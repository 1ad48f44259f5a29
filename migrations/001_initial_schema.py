"""Migration 001: Initial schema bootstrap.

Creates the NEDA dashboard schema from scratch: principals, API keys,
profiles, the append-only audit ledger, and the read-only ledger and catalog
tables the admin dashboard aggregates.
"""

version = "001"
description = "initial_schema"


def up(conn) -> None:
    """Create the full NEDA schema."""
    cur = conn.cursor()
    try:
        cur.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

        # ------------------------------------------------------------------
        # Principals
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS user_profiles (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                business_type TEXT NOT NULL CHECK (business_type IN ('sender', 'provider')),
                verification_status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (verification_status IN ('pending', 'verified', 'rejected')),
                company_name TEXT,
                email TEXT,
                website TEXT,
                phone TEXT,
                address TEXT,
                country TEXT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_user_profiles_status ON user_profiles(verification_status)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_user_profiles_created ON user_profiles(created_at DESC)")

        # ------------------------------------------------------------------
        # API keys (only the SHA-256 digest of the secret is stored)
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS api_keys (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                user_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE CASCADE,
                name TEXT NOT NULL CHECK (char_length(name) BETWEEN 1 AND 100),
                public_key TEXT NOT NULL UNIQUE,
                secret_hash TEXT NOT NULL,
                permissions JSONB NOT NULL DEFAULT '{}',
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                last_used_at TIMESTAMPTZ,
                expires_at TIMESTAMPTZ,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_api_keys_user ON api_keys(user_id)")

        # ------------------------------------------------------------------
        # Sender / provider profiles
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS profiles (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                user_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE CASCADE,
                kind TEXT NOT NULL CHECK (kind IN ('sender', 'provider')),
                is_active BOOLEAN NOT NULL DEFAULT TRUE,
                attributes JSONB NOT NULL DEFAULT '{}',
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        # At most one active profile per (user, kind)
        cur.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS uq_profiles_active_kind
            ON profiles(user_id, kind) WHERE is_active
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_profiles_user ON profiles(user_id, kind, created_at DESC)")

        # ------------------------------------------------------------------
        # Audit ledger (append-only)
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS audit_logs (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                actor_id TEXT NOT NULL,
                action TEXT NOT NULL,
                resource_type TEXT NOT NULL,
                resource_id TEXT NOT NULL,
                details JSONB NOT NULL DEFAULT '{}',
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_audit_logs_created ON audit_logs(created_at DESC)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_audit_logs_resource ON audit_logs(resource_id)")
        cur.execute("""
            CREATE OR REPLACE FUNCTION audit_logs_immutable() RETURNS trigger AS $$
            BEGIN
                RAISE EXCEPTION 'audit_logs is append-only';
            END;
            $$ LANGUAGE plpgsql
        """)
        cur.execute("DROP TRIGGER IF EXISTS trg_audit_logs_immutable ON audit_logs")
        cur.execute("""
            CREATE TRIGGER trg_audit_logs_immutable
            BEFORE UPDATE OR DELETE ON audit_logs
            FOR EACH ROW EXECUTE FUNCTION audit_logs_immutable()
        """)

        # ------------------------------------------------------------------
        # Ledger and catalog (aggregated, never written by this service)
        # ------------------------------------------------------------------
        cur.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                user_id UUID NOT NULL REFERENCES user_profiles(id) ON DELETE CASCADE,
                transaction_type TEXT NOT NULL CHECK (transaction_type IN ('onramp', 'offramp')),
                status TEXT NOT NULL,
                amount NUMERIC(20, 8) NOT NULL,
                currency TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id, created_at DESC)")

        cur.execute("""
            CREATE TABLE IF NOT EXISTS payment_orders (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                user_id UUID REFERENCES user_profiles(id) ON DELETE SET NULL,
                status TEXT NOT NULL,
                amount_in_usd NUMERIC(20, 2) NOT NULL DEFAULT 0,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        cur.execute("CREATE INDEX IF NOT EXISTS idx_payment_orders_created ON payment_orders(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_payment_orders_status ON payment_orders(status)")

        cur.execute("""
            CREATE TABLE IF NOT EXISTS tokens (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                symbol TEXT NOT NULL,
                is_enabled BOOLEAN NOT NULL DEFAULT TRUE,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        cur.execute("""
            CREATE TABLE IF NOT EXISTS fiat_currencies (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                code TEXT NOT NULL UNIQUE,
                is_enabled BOOLEAN NOT NULL DEFAULT TRUE,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
    finally:
        cur.close()


def down(conn) -> None:
    """Drop the NEDA schema."""
    cur = conn.cursor()
    try:
        for table in (
            "fiat_currencies",
            "tokens",
            "payment_orders",
            "transactions",
            "audit_logs",
            "profiles",
            "api_keys",
            "user_profiles",
        ):
            cur.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
        cur.execute("DROP FUNCTION IF EXISTS audit_logs_immutable()")
    finally:
        cur.close()
