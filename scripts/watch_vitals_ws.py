#!/usr/bin/env python3
"""
Print live vitals and alerts from the dashboard WebSocket.

Usage:
    python scripts/watch_vitals_ws.py              # every patient
    python scripts/watch_vitals_ws.py --patient-id 7
"""

import argparse
import asyncio
import json

import websockets


async def watch(base_url: str, patient_id: int | None) -> None:
    path = f"patients/{patient_id}" if patient_id is not None else "global"
    uri = f"{base_url.rstrip('/')}/api/v1/vitals/ws/{path}"
    print(f"Connecting to {uri}")

    async with websockets.connect(uri) as websocket:
        print("Connected, waiting for events...")
        async for raw in websocket:
            message = json.loads(raw)
            event, data = message.get("event"), message.get("data", {})
            if event in {"alert", "alert-global"}:
                print(
                    f"ALERT patient={data.get('patientId')} {data.get('vital')}="
                    f"{data.get('value')} {data.get('type')}/{data.get('severity')}"
                )
            else:
                readings = {
                    key: value
                    for key, value in data.items()
                    if key not in {"vitalId", "patientId", "source", "createdAt"} and value is not None
                }
                print(f"vitals patient={data.get('patientId')} {readings}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Watch live vitals over WebSocket")
    parser.add_argument("--base-url", default="ws://localhost:8000")
    parser.add_argument("--patient-id", type=int)
    args = parser.parse_args()

    try:
        asyncio.run(watch(args.base_url, args.patient_id))
    except KeyboardInterrupt:
        print("\nCancelled")


if __name__ == "__main__":
    main()
