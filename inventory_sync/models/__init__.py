from inventory_sync.models.inventory import InventoryItem
from inventory_sync.models.sales import SaleRecord
from inventory_sync.models.listing import ChannelListing
from inventory_sync.models.webhook import WebhookEvent
from inventory_sync.models.reconciliation import ReconciliationRun
