# Source spreadsheet reading, order parsing, classification and exclusion
