"""
Spike Bender
------------
Entry point for the dynamics leveling tool.

Usage:
  python spike_bender_tool.py -if input.wav -of output.wav
  python spike_bender_tool.py -if input.wav -of output.wav -np 2 -r 5 -wf k -n always -ng -1
  python spike_bender_tool.py -if input.wav -of output.wav --preset "Podcast"
"""

from spike_bender.spike_bender import main


if __name__ == "__main__":
    raise SystemExit(main())
