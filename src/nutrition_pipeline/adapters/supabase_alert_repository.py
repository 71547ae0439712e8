"""Supabase repository for pipeline alerts."""

from dataclasses import dataclass

from supabase import Client

from nutrition_pipeline.domain.alerts import AlertEvent
from nutrition_pipeline.services.alerts import AlertSink


@dataclass
class SupabaseAlertRepository(AlertSink):
    """Supabase-backed alert sink."""

    client: Client
    table: str = "pipeline_alerts"

    def send(self, event: AlertEvent) -> None:
        """Insert an alert row."""
        self.client.table(self.table).insert(event.to_row()).execute()
