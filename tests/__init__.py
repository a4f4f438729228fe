"""
stockroom Test Suite

Tests are organized by domain:
- test_stock_ledger.py: apply_delta, direction rules and the append-only ledger
- test_variant_aggregator.py / test_product_status.py: derived price, quantity and status
- test_purchase_receiving.py / test_purchase_order_service.py: purchasing
- test_sale_service.py / test_invoice_service.py: sales
- test_permissions.py / test_audit_service.py: access control and audit trail
"""
