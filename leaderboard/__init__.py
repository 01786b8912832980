"""Code-quality leaderboard ingestion and ranking pipeline"""
