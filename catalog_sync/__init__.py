"""Product catalog sync engine.

Keeps a versioned, eventually-consistent cache of supplier product data
fed by storefront webhooks (Shopify, WooCommerce, BigCommerce) and by
periodic EDI CSV drops, and republishes accepted changes as outbound events.
"""
