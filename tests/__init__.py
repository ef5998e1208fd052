"""
shopledger test suite

Tests are organized by concern:
- test_connection_errors.py: connection-failure classification
- test_persistence_gateway.py: retry, reconnect, cooldown and health probe
- test_startup_connect.py: boot-time connect loop and the cold-start gate
- test_identifier_generation.py: invoice and GRN numbering strategies
- test_invoice_service.py / test_grn_service.py: write services
- test_health_and_api.py: HTTP surface and error mapping
"""
