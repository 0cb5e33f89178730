from probewatch.models.platform import StatusPlatform
from probewatch.models.app import StatusApp
from probewatch.models.component import StatusComponent
from probewatch.models.incident import Incident, IncidentComponent
from probewatch.models.maintenance import MaintenanceWindow, MaintenanceComponent
from probewatch.models.uptime_record import UptimeRecord
from probewatch.models.health_check_setting import HealthCheckSetting

__all__ = [
    "StatusPlatform",
    "StatusApp",
    "StatusComponent",
    "Incident",
    "IncidentComponent",
    "MaintenanceWindow",
    "MaintenanceComponent",
    "UptimeRecord",
    "HealthCheckSetting",
]
