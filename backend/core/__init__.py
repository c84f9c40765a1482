"""Core trading logic: indicators, models, position store and engine.

This package contains pure business logic with no network access. The
broker is reached only through the BrokerGateway protocol, so the same
engine runs against the live REST client (app/) and against mocks in tests.
"""
