"""Overtime Ledger package.

Organized by feature modules (overtime, workers, ledger, ...) with a thin Flask
controller layer on top of service/repository layers.
"""
