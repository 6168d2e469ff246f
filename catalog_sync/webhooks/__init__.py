"""Storefront webhook intake: classify, verify, map to a canonical event, dispatch.

Receives product webhooks from Shopify, WooCommerce and BigCommerce on a
single endpoint; the platform is recognized from the payload shape.
"""
