"""Core domain package for the officina reminder engine.

Core contains trigger rules, template resolution, message compilation, and
the delivery ledger without any storage or UI code, keeping the business
logic portable.
"""
