from .accounts import migrate_admins, migrate_customers
from .baskets import migrate_carts, migrate_wishlists
from .catalog import migrate_categories, migrate_languages, migrate_product_options
from .geography import migrate_countries, migrate_zones
from .orders import migrate_orders, sync_order_counter
from .products import migrate_products

ENTITY_LOADERS = {
    "country": migrate_countries,
    "zone": migrate_zones,
    "language": migrate_languages,
    "productOption": migrate_product_options,
    "category": migrate_categories,
    "admin": migrate_admins,
    "customer": migrate_customers,
    "product": migrate_products,
    "cart": migrate_carts,
    "wishlist": migrate_wishlists,
    "order": migrate_orders,
}

__all__ = ["ENTITY_LOADERS", "sync_order_counter"]
