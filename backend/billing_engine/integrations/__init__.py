"""Outbound collaborators: payments processor and provisioning gateways."""
