"""marketplace settlement schema

Revision ID: 0001_marketplace_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_marketplace_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.users (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            role text NOT NULL CHECK (role IN ('CUSTOMER','VENDOR','DELIVERY_AGENCY','ADMIN')),
            full_name text,
            email text UNIQUE,
            phone text,
            created_at timestamptz NOT NULL DEFAULT now()
        );

        CREATE TABLE IF NOT EXISTS app.vendor_profiles (
            user_id uuid PRIMARY KEY REFERENCES app.users(id),
            business_name text NOT NULL,
            business_address text,
            business_city text,
            kyc_status text NOT NULL DEFAULT 'PENDING'
                CHECK (kyc_status IN ('PENDING','APPROVED','REJECTED')),
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );

        CREATE TABLE IF NOT EXISTS app.delivery_agencies (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id uuid NOT NULL UNIQUE REFERENCES app.users(id),
            name text NOT NULL,
            phone text,
            cities_covered text[] NOT NULL DEFAULT '{}',
            is_active boolean NOT NULL DEFAULT true,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );

        CREATE TABLE IF NOT EXISTS app.products (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            vendor_id uuid NOT NULL REFERENCES app.users(id),
            name text NOT NULL,
            price bigint NOT NULL CHECK (price >= 0),
            stock integer NOT NULL DEFAULT 0 CHECK (stock >= 0),
            city text,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.orders (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            customer_id uuid NOT NULL REFERENCES app.users(id),
            vendor_id uuid NOT NULL REFERENCES app.users(id),
            status text NOT NULL DEFAULT 'PENDING'
                CHECK (status IN ('PENDING','CONFIRMED','IN_TRANSIT','DELIVERED','COMPLETED','CANCELLED')),
            delivery_method text NOT NULL DEFAULT 'VENDOR_DELIVERY'
                CHECK (delivery_method IN ('VENDOR_DELIVERY','JEMO_RIDER')),
            delivery_fee bigint NOT NULL DEFAULT 0,
            delivery_address text,
            delivery_city text,
            delivery_phone text,
            subtotal bigint NOT NULL DEFAULT 0,
            total bigint NOT NULL DEFAULT 0,
            commission_amount bigint,
            vendor_earning bigint,
            funds_released_at timestamptz,
            cancel_reason text,
            cancelled_by text,
            confirmed_at timestamptz,
            in_transit_at timestamptz,
            delivered_at timestamptz,
            completed_at timestamptz,
            cancelled_at timestamptz,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS ix_orders_vendor_status ON app.orders (vendor_id, status);
        CREATE INDEX IF NOT EXISTS ix_orders_customer ON app.orders (customer_id, created_at DESC);

        CREATE TABLE IF NOT EXISTS app.order_items (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            order_id uuid NOT NULL REFERENCES app.orders(id) ON DELETE CASCADE,
            product_id uuid NOT NULL REFERENCES app.products(id),
            quantity integer NOT NULL CHECK (quantity > 0),
            unit_price bigint NOT NULL CHECK (unit_price >= 0)
        );
        CREATE INDEX IF NOT EXISTS ix_order_items_order ON app.order_items (order_id);
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.delivery_jobs (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            order_id uuid NOT NULL UNIQUE REFERENCES app.orders(id),
            agency_id uuid REFERENCES app.delivery_agencies(id),
            status text NOT NULL DEFAULT 'OPEN'
                CHECK (status IN ('OPEN','ACCEPTED','DELIVERED','CANCELLED')),
            pickup_city text,
            pickup_address text,
            dropoff_city text,
            dropoff_address text,
            fee bigint NOT NULL DEFAULT 0,
            accepted_at timestamptz,
            delivered_at timestamptz,
            cancelled_at timestamptz,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS ix_delivery_jobs_open_city
            ON app.delivery_jobs (lower(pickup_city)) WHERE status = 'OPEN' AND agency_id IS NULL;
        CREATE INDEX IF NOT EXISTS ix_delivery_jobs_agency ON app.delivery_jobs (agency_id, status);

        CREATE TABLE IF NOT EXISTS app.delivery_job_logs (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            job_id uuid NOT NULL REFERENCES app.delivery_jobs(id),
            event text NOT NULL,
            previous_status text,
            new_status text,
            actor_id uuid,
            actor_type text NOT NULL,
            actor_name text,
            notes text,
            metadata jsonb NOT NULL DEFAULT '{}'::jsonb,
            created_at timestamptz NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS ix_delivery_job_logs_job ON app.delivery_job_logs (job_id, created_at);
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.vendor_wallets (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            vendor_id uuid NOT NULL UNIQUE REFERENCES app.users(id),
            available_balance bigint NOT NULL DEFAULT 0 CHECK (available_balance >= 0),
            pending_balance bigint NOT NULL DEFAULT 0 CHECK (pending_balance >= 0),
            currency text NOT NULL DEFAULT 'XAF',
            withdrawals_locked boolean NOT NULL DEFAULT false,
            lock_reason text,
            locked_at timestamptz,
            locked_by_id uuid,
            last_withdrawal_at timestamptz,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );

        CREATE TABLE IF NOT EXISTS app.wallet_transactions (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            wallet_id uuid NOT NULL REFERENCES app.vendor_wallets(id),
            type text NOT NULL
                CHECK (type IN ('CREDIT_PENDING','CREDIT_AVAILABLE','DEBIT_WITHDRAWAL','REVERSAL')),
            amount bigint NOT NULL CHECK (amount > 0),
            currency text NOT NULL DEFAULT 'XAF',
            reference_type text NOT NULL CHECK (reference_type IN ('ORDER','PAYOUT','ADJUSTMENT')),
            reference_id uuid,
            status text NOT NULL DEFAULT 'PENDING' CHECK (status IN ('PENDING','POSTED','CANCELLED')),
            note text,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS ix_wallet_transactions_wallet
            ON app.wallet_transactions (wallet_id, created_at DESC);
        -- an order credits a wallet at most once per entry type
        CREATE UNIQUE INDEX IF NOT EXISTS ux_wallet_transactions_order_ref
            ON app.wallet_transactions (reference_type, reference_id, type)
            WHERE reference_type = 'ORDER';

        CREATE TABLE IF NOT EXISTS app.payouts (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            vendor_id uuid NOT NULL REFERENCES app.users(id),
            wallet_id uuid NOT NULL REFERENCES app.vendor_wallets(id),
            amount bigint NOT NULL CHECK (amount > 0),
            status text NOT NULL DEFAULT 'REQUESTED'
                CHECK (status IN ('REQUESTED','PROCESSING','SUCCESS','FAILED')),
            method text NOT NULL CHECK (method IN ('CM_MOMO','CM_OM')),
            destination_phone text NOT NULL,
            app_transaction_ref text NOT NULL UNIQUE,
            provider_ref text,
            provider_raw jsonb,
            failure_reason text,
            processed_at timestamptz,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS ix_payouts_status ON app.payouts (status, created_at);
        CREATE INDEX IF NOT EXISTS ix_payouts_vendor ON app.payouts (vendor_id, created_at DESC);

        CREATE TABLE IF NOT EXISTS app.vendor_payout_profiles (
            vendor_id uuid PRIMARY KEY REFERENCES app.users(id),
            preferred_method text NOT NULL CHECK (preferred_method IN ('CM_MOMO','CM_OM')),
            phone text NOT NULL,
            full_name text NOT NULL,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.audit_log (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            actor_user_id uuid NOT NULL,
            action text NOT NULL,
            target_type text NOT NULL,
            target_id text,
            metadata jsonb NOT NULL DEFAULT '{}'::jsonb,
            created_at timestamptz NOT NULL DEFAULT now()
        );
        CREATE INDEX IF NOT EXISTS ix_audit_log_target ON app.audit_log (target_type, target_id);
        """
    )


def downgrade() -> None:
    for table in (
        "audit_log",
        "vendor_payout_profiles",
        "payouts",
        "wallet_transactions",
        "vendor_wallets",
        "delivery_job_logs",
        "delivery_jobs",
        "order_items",
        "orders",
        "products",
        "delivery_agencies",
        "vendor_profiles",
        "users",
    ):
        op.execute(f"DROP TABLE IF EXISTS app.{table};")
