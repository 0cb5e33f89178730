# Entity kinds
PLATFORM = "PLATFORM"
APP = "APP"
COMPONENT = "COMPONENT"
ENTITY_TYPES = (PLATFORM, APP, COMPONENT)

# Entity status
OPERATIONAL = "OPERATIONAL"
DEGRADED = "DEGRADED"
PARTIAL_OUTAGE = "PARTIAL_OUTAGE"
MAJOR_OUTAGE = "MAJOR_OUTAGE"
ENTITY_STATUSES = (OPERATIONAL, DEGRADED, PARTIAL_OUTAGE, MAJOR_OUTAGE)

# Check types
CHECK_NONE = "NONE"
CHECK_PING = "PING"
CHECK_HTTP_GET = "HTTP_GET"
CHECK_TCP_PORT = "TCP_PORT"
CHECK_SERVICE_HEALTH = "SERVICE_HEALTH"

# Incident lifecycle
INVESTIGATING = "INVESTIGATING"
RESOLVED = "RESOLVED"

# Incident severity
CRITICAL = "CRITICAL"
MAJOR = "MAJOR"
OUTAGE_SEVERITIES = {CRITICAL, MAJOR}

# Maintenance lifecycle
CANCELLED = "CANCELLED"

SYSTEM_USER = "system"
