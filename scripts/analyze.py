#!/usr/bin/env python3
import argparse, json
from pathlib import Path
from medauth.pipeline import analyze_image, AnalyzerConfig
from medauth.profiles import load_profile
from medauth.aggregate import FusedVerdict
from medauth.report import format_verdict

def main(argv=None):
    ap = argparse.ArgumentParser(description="Fuse all score sources for one medical image")
    ap.add_argument("image")
    ap.add_argument("-o","--out", default="out")
    ap.add_argument("--profile", default=None)
    ap.add_argument("--weights", default=None, help="JSON file with per-method weight overrides")
    ap.add_argument("--threshold", type=float, default=None)
    ap.add_argument("--sources", default=None, help="JSON file with per-source enabled/params")
    ap.add_argument("--format", choices=("json", "text"), default="json")
    args = ap.parse_args(argv)

    prof = load_profile(args.profile) if args.profile else {}
    weights = prof.get("weights")
    thr = prof.get("threshold")
    sources = prof.get("sources")

    if args.weights: weights = json.loads(Path(args.weights).read_text())
    if args.threshold is not None: thr = float(args.threshold)
    if args.sources: sources = json.loads(Path(args.sources).read_text())

    cfg = AnalyzerConfig(sources=sources, weights=weights, threshold=thr, external=prof.get("external"))
    rep = analyze_image(args.image, args.out, cfg)
    if args.format == "text":
        o = rep["overall"]
        print(format_verdict(FusedVerdict(o["confidence"], o["aiProbability"], o["status"], tuple(o["details"]), o["isAI"])))
    else:
        print(json.dumps(rep, ensure_ascii=False, indent=2))

if __name__ == "__main__":
    main()
