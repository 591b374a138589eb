"""Subscription lifecycle engine and the services it is built from."""
