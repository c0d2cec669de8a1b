#!/usr/bin/env python3
"""Helper script to run the simulator and localization pipeline locally."""
import argparse
import os
import subprocess

parser = argparse.ArgumentParser()
parser.add_argument("--out", required=True)
parser.add_argument("--duration", type=float, default=3.0)
parser.add_argument("--method", choices=["icp", "gicp", "none"], default="icp")
args = parser.parse_args()

session_dir = os.path.abspath(args.out)

# run simulator
subprocess.check_call(["python3", "-m", "simulation.generate_synthetic", "--out", session_dir, "--duration", str(args.duration)])
# run localization
cmd = [
    "python3", "-m", "localization.pipeline",
    os.path.join(session_dir, "rawlog.jsonl"),
    os.path.join(session_dir, "map.txt"),
    "--config", os.path.join(session_dir, "config.json"),
]
if args.method == "icp":
    cmd.append("--enable-icp3d")
elif args.method == "gicp":
    cmd.append("--enable-gicp3d")
subprocess.check_call(cmd)
print("Done. output in:", session_dir)
