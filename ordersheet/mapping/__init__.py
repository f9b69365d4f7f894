# Mapping rule sets: schema, validation and JSON persistence
