VERSION = "0.4.0"

# Frontmatter key prefix for scheduling fields
FIELD_PREFIX = "wsr-"
