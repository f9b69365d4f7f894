# Duplicate detection, batch state and sending
