"""Builds the three source adapters for one connection's access token."""

from dataclasses import dataclass

from google.oauth2.credentials import Credentials

from ingestion.analytics import YouTubeAnalyticsClient
from ingestion.reporting import YouTubeReportingClient
from ingestion.youtube import YouTubeClient, create_youtube_client_with_oauth


@dataclass
class SourceAdapters:
    data: YouTubeClient
    analytics: YouTubeAnalyticsClient
    reporting: YouTubeReportingClient


def build_source_adapters(access_token: str) -> SourceAdapters:
    """Create Data, Analytics and Reporting clients sharing one OAuth token."""
    credentials = Credentials(token=access_token)
    return SourceAdapters(
        data=create_youtube_client_with_oauth(credentials),
        analytics=YouTubeAnalyticsClient(credentials=credentials),
        reporting=YouTubeReportingClient(access_token=access_token, credentials=credentials),
    )
