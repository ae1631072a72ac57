from inventory_sync.core.config import settings
from inventory_sync.models.inventory import InventoryItem
from inventory_sync.schemas.transactions import ExternalTransaction, LineItem
from inventory_sync.services.sale_pipeline import process_transaction


def test_transaction_counters(db, make_item, channels, monkeypatch):
    monkeypatch.setattr(settings, "seller_categories", {"CD": ["CD - Robe"]})
    make_item(db, code="AB12")
    make_item(db, code="CD7", name="CD7 - Sac", category="CD - Sac", seller_code="CD")

    outcome = process_transaction(
        db,
        ExternalTransaction(
            external_id="order-1",
            channel_name="pos",
            line_items=[
                LineItem(display_name="AB12 - Manteau", total_price=100),
                LineItem(display_name="CD7 - Sac", total_price=50),
                LineItem(display_name="Cadeau sans code", total_price=0),
            ],
        ),
    )

    assert outcome.processed == 3
    assert outcome.matched == 1
    assert outcome.applied == 1
    assert outcome.category_mismatched == 1
    assert outcome.unmatched == 1


def test_small_batch_running_out_is_withdrawn_elsewhere(db, make_item, channels):
    item = make_item(db, is_small_batch=True, quantity=2, pos_item_ref="POS-1", market_listing_ref="L-1")

    partial = process_transaction(
        db,
        ExternalTransaction(
            external_id="m-1",
            channel_name="marketplace",
            line_items=[LineItem(catalog_ref="AB12", quantity_sold=1)],
        ),
    )
    assert partial.applied == 1
    assert channels["pos"].calls == []

    process_transaction(
        db,
        ExternalTransaction(
            external_id="m-2",
            channel_name="marketplace",
            line_items=[LineItem(catalog_ref="AB12", quantity_sold=1)],
        ),
    )

    assert channels["pos"].withdrawn_ids() == [item.id]
    db.expire_all()
    stored = db.get(InventoryItem, item.id)
    assert stored.quantity == 0
    assert stored.lifecycle_state == "removed"
    assert stored.out_of_stock_at is not None


def test_same_item_twice_in_one_transaction_counts_once(db, make_item, channels):
    make_item(db, is_small_batch=True, quantity=5)

    outcome = process_transaction(
        db,
        ExternalTransaction(
            external_id="order-9",
            channel_name="pos",
            line_items=[
                LineItem(display_name="AB12 - Manteau", quantity_sold=1),
                LineItem(display_name="AB12 - Manteau", quantity_sold=2),
            ],
        ),
    )

    assert outcome.applied == 1
    assert outcome.already_applied == 1
