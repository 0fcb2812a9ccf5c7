"""
USAGE
=====

Smoke / load checks against a running clarity service.

1) health check
   python test_service.py health

2) clarity check only
   python test_service.py check photo.jpg

3) full process (check + enhancement + suggested text)
   python test_service.py process photo.jpg [-o final.jpg]

4) batch
   python test_service.py batch a.jpg b.jpg c.jpg

5) flood / concurrency
   python test_service.py flood photo.jpg -c 4 -n 20
"""
import argparse, asyncio, base64, mimetypes, statistics, sys, time, pathlib
from typing import List

import httpx

SERVICE_URL  = "http://localhost:18020"
HEALTH_PATH  = "/health"
CLARITY_PATH = "/api/image-clarity"

# each full process run can chain four model calls
TIMEOUT = 180


def b64(img_path: pathlib.Path) -> str:
    return base64.b64encode(img_path.read_bytes()).decode()


def make_payload(img: pathlib.Path, check_only: bool) -> dict:
    media_type = mimetypes.guess_type(img.name)[0] or "image/jpeg"
    return {"imageData": b64(img), "mediaType": media_type, "checkOnly": check_only}


def describe(result: dict) -> str:
    clarity = result.get("clarity", result)
    line = f"score={clarity.get('clarityScore')} blurry={clarity.get('isBlurry')}"
    if "enhancement" in result:
        enh = result["enhancement"]
        line += f" enhanced={enh.get('success')} confidence={enh.get('improvementScore')}"
    if result.get("suggestedText"):
        line += f" text={len(result['suggestedText'])} chars"
    return line

# ────────────────────────────────────────────────────────────
#  HEALTH CHECK
# ────────────────────────────────────────────────────────────
async def check_health():
    async with httpx.AsyncClient() as cli:
        r = await cli.get(SERVICE_URL + HEALTH_PATH, timeout=5)
    print("health:", r.status_code, r.json())

# ────────────────────────────────────────────────────────────
#  SINGLE IMAGE
# ────────────────────────────────────────────────────────────
async def run_single(img: pathlib.Path, check_only: bool, out_file: pathlib.Path | None = None,
                     verbose: bool = True):
    payload = make_payload(img, check_only)
    async with httpx.AsyncClient() as cli:
        t0 = time.perf_counter()
        r  = await cli.post(SERVICE_URL + CLARITY_PATH, json=payload, timeout=TIMEOUT)
        dt = (time.perf_counter() - t0) * 1000

    if r.status_code == 200:
        result = r.json()
        print(f"✓ {img.name}: {describe(result)} ({dt:.1f} ms)")
        if out_file and "image" in result:
            out_file.parent.mkdir(parents=True, exist_ok=True)
            out_file.write_bytes(base64.b64decode(result["image"]["final"].split(",", 1)[1]))
            print(f"  ↳ saved → {out_file}")
        if verbose and result.get("suggestedText"):
            print("  suggested text:")
            print("   ", result["suggestedText"][:500])
    else:
        print(f"✗ {img.name}: {r.status_code} - {r.text[:100]} ({dt:.1f} ms)")

    return r.status_code, dt

# ────────────────────────────────────────────────────────────
#  BATCH TEST
# ────────────────────────────────────────────────────────────
async def run_batch(images: List[pathlib.Path]):
    print(f"\nBatch testing {len(images)} images...")
    results = []

    for img in images:
        status, latency = await run_single(img, check_only=False, verbose=False)
        results.append((img.name, status, latency))

    successful = sum(1 for _, status, _ in results if status == 200)
    avg_latency = statistics.mean([lat for _, _, lat in results])

    print(f"\n{'='*50}")
    print(f"Batch Summary:")
    print(f"  Total: {len(images)}")
    print(f"  Successful: {successful}/{len(images)}")
    print(f"  Avg latency: {avg_latency:.1f} ms")
    print('='*50)

# ────────────────────────────────────────────────────────────
#  FLOOD / CONCURRENCY BENCH
# ────────────────────────────────────────────────────────────
async def run_many(img: pathlib.Path, conc: int, repeat: int):
    payload = make_payload(img, check_only=True)

    print(f"\nFlood test: {repeat} clarity checks with max {conc} concurrent")

    latencies, codes, scores = [], [], []
    sem = asyncio.Semaphore(conc)

    async def bound(i: int):
        async with sem:
            async with httpx.AsyncClient() as cli:
                t0 = time.perf_counter()
                r  = await cli.post(SERVICE_URL + CLARITY_PATH, json=payload, timeout=TIMEOUT)
                latencies.append((time.perf_counter() - t0) * 1000)
            codes.append(r.status_code)
            if r.status_code == 200:
                scores.append(r.json().get("clarityScore"))
            if (i + 1) % 10 == 0:
                print(f"  {i + 1}/{repeat} completed...")

    await asyncio.gather(*(bound(i) for i in range(repeat)))

    ok = codes.count(200)
    print(f"\n{'='*60}")
    print(f"Flood Test Results:")
    print(f"  Requests: {repeat} at ≤{conc} concurrency")
    print(f"  Success rate: {ok}/{repeat} ({ok/repeat*100:.1f}%)")

    if latencies:
        print(f"\nLatency (ms):")
        print(f"  p50: {statistics.median(latencies):.1f}")
        if len(latencies) >= 20:
            print(f"  p95: {statistics.quantiles(latencies, n=20)[18]:.1f}")
        print(f"  max: {max(latencies):.1f}")
        print(f"  min: {min(latencies):.1f}")

    # the model grades the same image; a wide spread means the prompt is unstable
    if scores:
        print(f"\nClarity scores: min={min(scores)} max={max(scores)} distinct={len(set(scores))}")
    print('='*60)

# ────────────────────────────────────────────────────────────
#  MAIN
# ────────────────────────────────────────────────────────────
def main():
    p = argparse.ArgumentParser(description="Smoke test the image clarity service")
    sub = p.add_subparsers(dest="cmd", required=True, help="Command to run")

    sub.add_parser("health", help="Check service health")

    s1 = sub.add_parser("check", help="Clarity check only")
    s1.add_argument("image", type=pathlib.Path, help="Image file path")

    s2 = sub.add_parser("process", help="Full clarity process")
    s2.add_argument("image", type=pathlib.Path, help="Image file path")
    s2.add_argument("-o", "--out", type=pathlib.Path, default=None, help="Write final image here")

    s3 = sub.add_parser("batch", help="Process multiple images")
    s3.add_argument("images", type=pathlib.Path, nargs="+", help="Image file paths")

    s4 = sub.add_parser("flood", help="Load/concurrency test")
    s4.add_argument("image", type=pathlib.Path, help="Image to use for testing")
    s4.add_argument("-c", "--concurrency", type=int, default=4, help="Max concurrent requests")
    s4.add_argument("-n", "--repeat", type=int, default=20, help="Total requests to send")

    args = p.parse_args()

    if args.cmd == "health":
        asyncio.run(check_health())
    elif args.cmd == "check":
        asyncio.run(run_single(args.image, check_only=True))
    elif args.cmd == "process":
        asyncio.run(run_single(args.image, check_only=False, out_file=args.out))
    elif args.cmd == "batch":
        asyncio.run(run_batch(args.images))
    elif args.cmd == "flood":
        asyncio.run(run_many(args.image, args.concurrency, args.repeat))

if __name__ == "__main__":
    if sys.version_info < (3, 10):
        print("Requires Python 3.10+", file=sys.stderr)
        sys.exit(1)
    main()
