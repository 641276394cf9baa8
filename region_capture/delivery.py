"""
Delivery channels for finished captures.

``SlackDelivery`` uploads to a channel; ``LocalDelivery`` writes the PNG to a
directory, for dry runs or keeping an archive next to the upload.
"""

from pathlib import Path
from typing import Optional

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError, SlackClientError

from .errors import DeliveryFailure, first_line
from .models import CaptureResult


class SlackDelivery:
    """Upload captures to one Slack channel with ``files_upload_v2``."""

    def __init__(self, token: str, channel_id: str, add_comment: bool = True,
                 client: Optional[WebClient] = None):
        if not channel_id:
            raise ValueError("A Slack channel id is required")
        self.channel_id = channel_id
        self.add_comment = add_comment
        self.client = client or WebClient(token=token)

    def deliver(self, result: CaptureResult):
        upload = {
            'channel': self.channel_id,
            'file': result.png,
            'filename': result.filename,
            'title': result.title,
        }
        if self.add_comment:
            upload['initial_comment'] = result.caption

        try:
            self.client.files_upload_v2(**upload)
        except SlackApiError as e:
            error = e.response.get('error', str(e)) if e.response is not None else str(e)
            raise DeliveryFailure("upload_failed", url=result.url, detail=error) from e
        except (SlackClientError, OSError) as e:
            raise DeliveryFailure("upload_failed", url=result.url, detail=first_line(e)) from e
        print(f"    > Uploaded {result.filename} to Slack channel {self.channel_id}")


class LocalDelivery:
    """Write captures into a directory."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def deliver(self, result: CaptureResult) -> Path:
        path = self.output_dir / result.filename
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(result.png)
        except OSError as e:
            raise DeliveryFailure("write_failed", url=result.url, detail=f"{path}: {e.strerror or e}") from e
        print(f"    > Screenshot saved: {path}")
        return path
