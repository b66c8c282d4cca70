"""Domain layer: enums, value objects, mutation variants and exceptions.

No transport or cache-storage code here.
"""
