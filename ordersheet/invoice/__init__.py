# Courier invoice conversion
