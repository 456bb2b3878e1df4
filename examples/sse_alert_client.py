"""
Example SSE client for alert notifications.

Connects to the alert stream, prints each alert as it arrives and can dismiss
alerts from the live feed.

Usage:
    python examples/sse_alert_client.py --patient-id 7
    python examples/sse_alert_client.py               # every patient
    python examples/sse_alert_client.py --patient-id 7 --dismiss
"""

import argparse
import asyncio
import json
from typing import Any

import httpx


class AlertSSEClient:
    """Client for consuming alert notifications via SSE."""

    def __init__(self, base_url: str, patient_id: int | None = None, auto_dismiss: bool = False):
        self.base_url = base_url.rstrip("/")
        self.patient_id = patient_id
        self.auto_dismiss = auto_dismiss

    async def connect(self) -> None:
        params = {"patient_id": str(self.patient_id)} if self.patient_id is not None else {}
        url = f"{self.base_url}/api/v1/alerts/stream"
        print(f"Connecting to {url} (patient: {self.patient_id or 'all'})")

        try:
            async with httpx.AsyncClient(timeout=None) as client:
                async with client.stream("GET", url, params=params) as response:
                    if response.status_code != 200:
                        print(f"Error: {response.status_code}")
                        print(await response.aread())
                        return

                    print("Connected, waiting for alerts...\n")
                    event = "message"
                    async for line in response.aiter_lines():
                        if line.startswith("event:"):
                            event = line[6:].strip()
                        elif line.startswith("data:"):
                            try:
                                alert = json.loads(line[5:].strip())
                            except json.JSONDecodeError as e:
                                print(f"Error parsing alert: {e}")
                                continue
                            await self.handle_alert(event, alert)
                        elif line.startswith(":"):
                            # Keepalive comment
                            print(".", end="", flush=True)
        except httpx.HTTPError as e:
            print(f"\nConnection error: {e}")
        finally:
            print("Disconnected from alert stream")

    async def handle_alert(self, event: str, alert: dict[str, Any]) -> None:
        banner = "CRITICAL" if alert.get("severity") == "critical" else "warning"
        print("\n" + "=" * 60)
        print(f"[{event}] {banner}")
        print(f"Alert ID: {alert.get('id')}")
        print(f"Patient ID: {alert.get('patientId')}")
        print(f"Vital: {alert.get('vital')} = {alert.get('value')} ({alert.get('type')})")
        print(f"Timestamp: {alert.get('timestamp')}")
        print("=" * 60)

        if self.auto_dismiss:
            await self.dismiss_alert(alert["patientId"], alert["id"])

    async def dismiss_alert(self, patient_id: int, alert_id: str) -> None:
        """Hide an alert from the live feed via HTTP POST."""
        url = f"{self.base_url}/api/v1/alerts/{patient_id}/dismiss/{alert_id}"
        async with httpx.AsyncClient() as client:
            response = await client.post(url)
        if response.status_code == 404:
            print(f"Alert {alert_id} already superseded")
        else:
            response.raise_for_status()
            print(f"Dismissed {alert_id}")


async def main() -> None:
    parser = argparse.ArgumentParser(description="SSE Alert Client Example")
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--patient-id", type=int, help="Patient to monitor (default: all)")
    parser.add_argument("--dismiss", action="store_true", help="Dismiss each alert once shown")
    args = parser.parse_args()

    client = AlertSSEClient(args.base_url, args.patient_id, args.dismiss)
    await client.connect()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nCancelled")
