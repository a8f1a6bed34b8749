"""
Protocol - the deployed fund protocol.

- config:   environment, address book, and token metadata
- datafeed: price ticks for the DataFeed oracle
- fund:     participant roles, fund setup, subscription and redemption
"""
