"""
Infrastructure layer - data access for the job cost ledgers.
"""
