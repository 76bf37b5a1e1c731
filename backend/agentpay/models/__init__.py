"""Domain models for agents, policies, transactions, services and sessions."""
