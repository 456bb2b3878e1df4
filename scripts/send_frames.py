#!/usr/bin/env python3
"""
Send monitor frames from disk through the full monitoring cycle.

Each image is posted to /vitals/frames for one patient, the way the bedside
camera client does it. Pass several files (e.g. frames dumped from a video) to
replay a sequence.

Usage:
    python scripts/send_frames.py --patient-id 7 frame_001.jpg frame_002.jpg
"""

import argparse
import asyncio
import base64
import json
import mimetypes
from datetime import datetime, timezone
from pathlib import Path

import httpx


def encode_frame(path: Path) -> str:
    mime = mimetypes.guess_type(path.name)[0] or "image/jpeg"
    return f"data:{mime};base64,{base64.b64encode(path.read_bytes()).decode()}"


async def send_frames(base_url: str, patient_id: int, paths: list[Path], source: str, delay: float) -> None:
    url = f"{base_url.rstrip('/')}/api/v1/vitals/frames"
    async with httpx.AsyncClient(timeout=60.0) as client:
        for index, path in enumerate(paths, start=1):
            body = {
                "imageBase64": encode_frame(path),
                "patientId": patient_id,
                "source": source,
                "capturedAt": datetime.now(timezone.utc).isoformat(),
            }
            response = await client.post(url, json=body)
            if response.status_code != 201:
                print(f"[{index}] {path.name}: {response.status_code} {response.text}")
                continue

            result = response.json()
            record = result["record"]
            readings = {k: v for k, v in record.items() if k not in {"vitalId", "patientId", "source", "createdAt"}}
            print(f"[{index}] {path.name}: {json.dumps(readings)}")
            for alert in result["alerts"]:
                marker = "!!" if alert["severity"] == "critical" else "! "
                print(f"    {marker} {alert['vital']} {alert['type']} {alert['value']}")
            if result["notified"]:
                print(f"    notified: {', '.join(result['notified'])}")
            await asyncio.sleep(delay)


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay monitor frames against the API")
    parser.add_argument("frames", nargs="+", type=Path, help="Image files to send, in capture order")
    parser.add_argument("--patient-id", type=int, required=True)
    parser.add_argument("--base-url", default="http://localhost:8000")
    parser.add_argument("--source", default="camera", choices=["camera", "video"])
    parser.add_argument("--delay", type=float, default=1.0, help="Seconds between frames")
    args = parser.parse_args()

    asyncio.run(send_frames(args.base_url, args.patient_id, args.frames, args.source, args.delay))


if __name__ == "__main__":
    main()
