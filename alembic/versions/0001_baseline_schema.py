"""baseline schema

Revision ID: 0001_baseline_schema
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_baseline_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS winnings (
            winning_id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            winner_id text NOT NULL,
            type text NOT NULL CHECK (type IN ('PAYMENT', 'REWARD')),
            category text,
            title text,
            description text,
            external_id text,
            origin text,
            attributes jsonb NOT NULL DEFAULT '{}'::jsonb,
            created_by text,
            updated_by text,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS winnings_winner_id_idx ON winnings (winner_id);
        CREATE INDEX IF NOT EXISTS winnings_category_idx ON winnings (category);
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS payment (
            payment_id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            winnings_id uuid NOT NULL REFERENCES winnings (winning_id) ON DELETE CASCADE,
            installment_number integer NOT NULL DEFAULT 1 CHECK (installment_number >= 1),
            gross_amount numeric(12, 2) NOT NULL DEFAULT 0,
            net_amount numeric(12, 2) NOT NULL DEFAULT 0,
            total_amount numeric(12, 2) NOT NULL DEFAULT 0,
            currency varchar(3) NOT NULL DEFAULT 'USD',
            payment_status text NOT NULL CHECK (payment_status IN (
                'OWED', 'ON_HOLD', 'ON_HOLD_ADMIN', 'PROCESSING',
                'PAID', 'CANCELLED', 'FAILED', 'RETURNED'
            )),
            release_date timestamptz NOT NULL DEFAULT now(),
            date_paid timestamptz,
            billing_account text,
            version integer NOT NULL DEFAULT 1,
            created_by text,
            updated_by text,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now(),
            CONSTRAINT payment_winning_installment_uniq UNIQUE (winnings_id, installment_number)
        );
        CREATE INDEX IF NOT EXISTS payment_status_idx ON payment (payment_status);
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS audit (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            winnings_id uuid NOT NULL REFERENCES winnings (winning_id) ON DELETE CASCADE,
            user_id text NOT NULL,
            action text NOT NULL,
            note text,
            created_at timestamptz NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS audit_winnings_id_created_idx ON audit (winnings_id, created_at DESC);
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS payment_method (
            payment_method_id serial PRIMARY KEY,
            payment_method_type text NOT NULL UNIQUE,
            name text NOT NULL,
            description text
        );
        INSERT INTO payment_method (payment_method_type, name, description)
        VALUES ('PROVIDER_PAYOUT', 'Provider payout', 'Payouts through the batch payment provider')
        ON CONFLICT (payment_method_type) DO NOTHING;

        CREATE TABLE IF NOT EXISTS user_payment_methods (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id text NOT NULL,
            payment_method_id integer NOT NULL REFERENCES payment_method (payment_method_id),
            status text NOT NULL DEFAULT 'INACTIVE' CHECK (status IN ('CONNECTED', 'INACTIVE')),
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now(),
            CONSTRAINT user_payment_methods_user_method_uniq UNIQUE (user_id, payment_method_id)
        );

        CREATE TABLE IF NOT EXISTS user_tax_form_associations (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id text NOT NULL,
            tax_form_id text NOT NULL,
            tax_form_status text NOT NULL CHECK (tax_form_status IN ('ACTIVE', 'INACTIVE')),
            date_filed timestamptz,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now(),
            CONSTRAINT user_tax_form_associations_uniq UNIQUE (user_id, tax_form_id)
        );

        CREATE TABLE IF NOT EXISTS user_identity_verification_associations (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id text NOT NULL UNIQUE,
            verification_id text NOT NULL,
            verification_status text NOT NULL CHECK (verification_status IN ('ACTIVE', 'INACTIVE')),
            date_filed timestamptz NOT NULL DEFAULT now(),
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS payment_releases (
            payment_release_id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id text NOT NULL,
            total_net_amount numeric(12, 2) NOT NULL,
            status text NOT NULL CHECK (status IN ('PROCESSING', 'PROCESSED', 'FAILED', 'RETURNED')),
            payment_method_id uuid REFERENCES user_payment_methods (id),
            payee_id text,
            external_transaction_id text,
            metadata jsonb NOT NULL DEFAULT '{}'::jsonb,
            release_date timestamptz NOT NULL DEFAULT now(),
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS payment_releases_status_idx ON payment_releases (status, release_date DESC);

        CREATE TABLE IF NOT EXISTS payment_release_associations (
            payment_release_id uuid NOT NULL REFERENCES payment_releases (payment_release_id) ON DELETE CASCADE,
            payment_id uuid NOT NULL REFERENCES payment (payment_id),
            PRIMARY KEY (payment_release_id, payment_id)
        );
        CREATE INDEX IF NOT EXISTS payment_release_associations_payment_idx
            ON payment_release_associations (payment_id);
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS provider_recipient (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id text NOT NULL UNIQUE,
            recipient_id text NOT NULL UNIQUE,
            user_payment_method_id uuid REFERENCES user_payment_methods (id),
            created_at timestamptz NOT NULL DEFAULT now()
        );

        CREATE TABLE IF NOT EXISTS provider_recipient_payment_method (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            provider_recipient_id uuid NOT NULL REFERENCES provider_recipient (id) ON DELETE CASCADE,
            recipient_account_id text NOT NULL UNIQUE,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS provider_webhook_log (
            event_id text PRIMARY KEY,
            event_time text,
            event_payload jsonb NOT NULL DEFAULT '{}'::jsonb,
            event_model text,
            event_action text,
            status text NOT NULL DEFAULT 'logged' CHECK (status IN ('logged', 'processed', 'error')),
            error_message text,
            created_by text,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS provider_webhook_log_status_idx ON provider_webhook_log (status, created_at DESC);
        """
    )


def downgrade() -> None:
    op.execute(
        """
        DROP TABLE IF EXISTS provider_webhook_log;
        DROP TABLE IF EXISTS provider_recipient_payment_method;
        DROP TABLE IF EXISTS provider_recipient;
        DROP TABLE IF EXISTS payment_release_associations;
        DROP TABLE IF EXISTS payment_releases;
        DROP TABLE IF EXISTS user_identity_verification_associations;
        DROP TABLE IF EXISTS user_tax_form_associations;
        DROP TABLE IF EXISTS user_payment_methods;
        DROP TABLE IF EXISTS payment_method;
        DROP TABLE IF EXISTS audit;
        DROP TABLE IF EXISTS payment;
        DROP TABLE IF EXISTS winnings;
        """
    )
