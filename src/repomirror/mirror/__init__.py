"""
Mirror Integration - Talk to GitHub, drive local git mirrors, run a full scan.
"""
