"""
Alembic migration: Create order store, cart tables and notification triggers.

This migration creates the orders, order_lines, applied_promotions,
order_status_history, carts and cart_items tables, plus the trigger
functions that publish order lifecycle events through pg_notify:

- pedido-creado: a row is inserted into orders
- pedido-aprobado: orders.status changes to APROBADO
- pedido-entregado: orders.status changes to ENTREGADO

The notification payload is the order id as text.

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ORDER_STATUSES = (
    'PENDIENTE',
    'APROBADO',
    'PREPARADO',
    'EN_RUTA',
    'ENTREGADO',
    'ANULADO',
    'RECHAZADO',
)

STATUS_CHECK = "{column} IN (" + ", ".join(f"'{s}'" for s in ORDER_STATUSES) + ")"


def _id_column() -> sa.Column:
    return sa.Column(
        'id',
        postgresql.UUID(as_uuid=True),
        nullable=False,
        server_default=sa.text('gen_random_uuid()'),
        comment='Unique identifier for the record',
    )


def _timestamp_columns() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
            comment='Timestamp when record was created',
        ),
        sa.Column(
            'updated_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
            comment='Timestamp when record was last updated',
        ),
    ]


def upgrade() -> None:
    """
    Upgrade database schema to create the order store.

    Creates the order aggregate tables with monetary check constraints, the
    cart tables read by the order saga, and the NOTIFY triggers consumed by
    the order event listener.
    """
    # Orders
    op.create_table(
        'orders',
        _id_column(),
        sa.Column(
            'visual_code',
            sa.BigInteger(),
            sa.Identity(always=False),
            nullable=False,
            comment='Sequential human-readable order number',
        ),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('branch_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            'status',
            sa.String(length=30),
            nullable=False,
            server_default='PENDIENTE',
        ),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount_total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('grand_total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=100), nullable=True),
        sa.Column('requested_delivery_date', sa.Date(), nullable=True),
        sa.Column('origin', sa.String(length=50), nullable=True),
        sa.Column('delivery_latitude', sa.Numeric(9, 6), nullable=True),
        sa.Column('delivery_longitude', sa.Numeric(9, 6), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column(
            'reservation_id',
            sa.String(length=100),
            nullable=True,
            comment='Opaque reservation token owned by the inventory service',
        ),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('visual_code', name='uq_orders_visual_code'),
        sa.CheckConstraint(STATUS_CHECK.format(column='status'), name='ck_orders_status'),
        sa.CheckConstraint('subtotal >= 0', name='ck_orders_subtotal_non_negative'),
        sa.CheckConstraint('tax_total >= 0', name='ck_orders_tax_non_negative'),
        sa.CheckConstraint(
            'grand_total = subtotal - discount_total + tax_total',
            name='ck_orders_grand_total',
        ),
        comment='Customer orders',
    )
    op.create_index('ix_orders_client_id', 'orders', ['client_id'])
    op.create_index('ix_orders_seller_id', 'orders', ['seller_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_client_created', 'orders', ['client_id', 'created_at'])

    # Order lines
    op.create_table(
        'order_lines',
        _id_column(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sku', sa.String(length=50), nullable=True),
        sa.Column('product_name', sa.String(length=200), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 2), nullable=False),
        sa.Column('unit_of_measure', sa.String(length=20), nullable=True),
        sa.Column('list_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('final_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('campaign_id', sa.String(length=64), nullable=True),
        sa.Column('discount_reason', sa.String(length=100), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_order_lines'),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name='fk_order_lines_order_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint('quantity > 0', name='ck_order_lines_quantity_positive'),
        sa.CheckConstraint(
            'campaign_id IS NULL OR final_price <= list_price',
            name='ck_order_lines_promotion_price',
        ),
        comment='Order line snapshots',
    )
    op.create_index('ix_order_lines_order_id', 'order_lines', ['order_id'])

    # Applied promotions
    op.create_table(
        'applied_promotions',
        _id_column(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_line_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('campaign_id', sa.String(length=64), nullable=False),
        sa.Column('discount_type', sa.String(length=30), nullable=True),
        sa.Column('discount_value', sa.Numeric(12, 2), nullable=True),
        sa.Column('applied_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column(
            'created_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
        sa.PrimaryKeyConstraint('id', name='pk_applied_promotions'),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name='fk_applied_promotions_order_id',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['order_line_id'], ['order_lines.id'],
            name='fk_applied_promotions_order_line_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint('applied_amount >= 0', name='ck_applied_promotions_amount'),
        comment='Discounts applied to order lines',
    )
    op.create_index('ix_applied_promotions_order_id', 'applied_promotions', ['order_id'])

    # Status history
    op.create_table(
        'order_status_history',
        _id_column(),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('previous_status', sa.String(length=30), nullable=True),
        sa.Column('new_status', sa.String(length=30), nullable=False),
        sa.Column('changed_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column(
            'changed_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
        sa.PrimaryKeyConstraint('id', name='pk_order_status_history'),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name='fk_order_status_history_order_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint(
            STATUS_CHECK.format(column='new_status'),
            name='ck_order_status_history_new_status',
        ),
        comment='Order status transition audit trail',
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])
    op.create_index(
        'ix_order_status_history_order_changed',
        'order_status_history',
        ['order_id', 'changed_at'],
    )

    # Carts
    op.create_table(
        'carts',
        _id_column(),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('seller_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('client_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_carts'),
        comment='Shopping carts per owner and seller',
    )
    op.create_index('ix_carts_owner_seller', 'carts', ['owner_id', 'seller_id'], unique=True)
    op.create_index(
        'ix_carts_owner_self_service',
        'carts',
        ['owner_id'],
        unique=True,
        postgresql_where=sa.text('seller_id IS NULL'),
    )

    op.create_table(
        'cart_items',
        _id_column(),
        sa.Column('cart_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 2), nullable=False),
        sa.Column('unit_of_measure', sa.String(length=20), nullable=True),
        sa.Column('unit_price_ref', sa.Numeric(12, 2), nullable=True),
        sa.Column('campaign_id', sa.String(length=64), nullable=True),
        sa.Column('sku', sa.String(length=50), nullable=True),
        sa.Column('product_name', sa.String(length=200), nullable=True),
        *_timestamp_columns(),
        sa.PrimaryKeyConstraint('id', name='pk_cart_items'),
        sa.ForeignKeyConstraint(
            ['cart_id'], ['carts.id'],
            name='fk_cart_items_cart_id',
            ondelete='CASCADE',
        ),
        sa.CheckConstraint('quantity > 0', name='ck_cart_items_quantity_positive'),
        comment='Shopping cart line items',
    )
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'])
    op.create_index(
        'ix_cart_items_cart_product',
        'cart_items',
        ['cart_id', 'product_id'],
        unique=True,
    )

    # Order lifecycle notifications
    op.execute(
        """
        CREATE OR REPLACE FUNCTION notify_order_created() RETURNS trigger AS $$
        BEGIN
            PERFORM pg_notify('pedido-creado', NEW.id::text);
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE OR REPLACE FUNCTION notify_order_status_changed() RETURNS trigger AS $$
        BEGIN
            IF NEW.status IS DISTINCT FROM OLD.status THEN
                IF NEW.status = 'APROBADO' THEN
                    PERFORM pg_notify('pedido-aprobado', NEW.id::text);
                ELSIF NEW.status = 'ENTREGADO' THEN
                    PERFORM pg_notify('pedido-entregado', NEW.id::text);
                END IF;
            END IF;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_orders_notify_created
        AFTER INSERT ON orders
        FOR EACH ROW EXECUTE FUNCTION notify_order_created();
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_orders_notify_status
        AFTER UPDATE OF status ON orders
        FOR EACH ROW EXECUTE FUNCTION notify_order_status_changed();
        """
    )


def downgrade() -> None:
    """
    Downgrade database schema by removing the order store.

    Drops triggers and trigger functions first, then tables in reverse
    dependency order.
    """
    op.execute("DROP TRIGGER IF EXISTS trg_orders_notify_status ON orders")
    op.execute("DROP TRIGGER IF EXISTS trg_orders_notify_created ON orders")
    op.execute("DROP FUNCTION IF EXISTS notify_order_status_changed()")
    op.execute("DROP FUNCTION IF EXISTS notify_order_created()")

    op.drop_index('ix_cart_items_cart_product', table_name='cart_items')
    op.drop_index('ix_cart_items_cart_id', table_name='cart_items')
    op.drop_table('cart_items')

    op.drop_index('ix_carts_owner_self_service', table_name='carts')
    op.drop_index('ix_carts_owner_seller', table_name='carts')
    op.drop_table('carts')

    op.drop_index('ix_order_status_history_order_changed', table_name='order_status_history')
    op.drop_index('ix_order_status_history_order_id', table_name='order_status_history')
    op.drop_table('order_status_history')

    op.drop_index('ix_applied_promotions_order_id', table_name='applied_promotions')
    op.drop_table('applied_promotions')

    op.drop_index('ix_order_lines_order_id', table_name='order_lines')
    op.drop_table('order_lines')

    op.drop_index('ix_orders_client_created', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_seller_id', table_name='orders')
    op.drop_index('ix_orders_client_id', table_name='orders')
    op.drop_table('orders')
