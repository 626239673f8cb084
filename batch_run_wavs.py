"""python batch_run_wavs.py
  --folder "recordings/"
  --recursive
  --out_dir "leveled/"
  --preset "Podcast"
  --limit 3
"""
from spike_bender.batch import main


if __name__ == "__main__":
    raise SystemExit(main())
