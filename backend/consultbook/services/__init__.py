"""
Service layer.

Services own transactions and business rules; repositories below them only
read and write rows.
"""
