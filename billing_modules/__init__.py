"""
billing_modules -- thin orchestration services that own transaction
boundaries.  ``trade`` enters and maintains trade records; ``cash`` plans,
validates and commits cash events.
"""
