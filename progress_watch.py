import asyncio
import json
import sys
from pathlib import Path

import httpx
import websockets

GATEWAY_URL = "http://localhost:3001"


async def watch(file_path: str, language: str | None = None):
    async with httpx.AsyncClient(base_url=GATEWAY_URL, timeout=30.0) as client:
        path = Path(file_path)
        with path.open("rb") as f:
            resp = await client.post(
                "/process-audio",
                files={"audioFile": (path.name, f, "application/octet-stream")},
                data={"options": json.dumps({"language": language})},
            )
        resp.raise_for_status()
        job = resp.json()
        print(f"Job {job['job_id']} queued")

        async with websockets.connect(job["websocket_url"], close_timeout=2) as ws:
            async for msg in ws:
                update = json.loads(msg)
                print(f"[{update.get('progress', '?'):>3}%] {update.get('message') or update.get('detail')}")
                if update.get("type") == "error":
                    break

        resp = await client.get(f"/job/{job['job_id']}/result")
        body = resp.json()
        if body.get("success"):
            result = body["result"]
            print(
                f"\n{len(result['words'])} words, {len(result['silence_segments'])} silences, "
                f"{result['chunks_succeeded']}/{result['planned_chunks']} chunks, "
                f"{result['total_duration']:.1f}s"
            )
        else:
            print(json.dumps(body, indent=2))

    print("\nDone.")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("usage: progress_watch.py AUDIO_FILE [LANGUAGE]", file=sys.stderr)
        sys.exit(2)
    lang = sys.argv[2] if len(sys.argv) > 2 else None
    try:
        asyncio.run(watch(sys.argv[1], lang))
    except websockets.exceptions.ConnectionClosedError:
        pass
