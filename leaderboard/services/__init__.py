"""Leaderboard domain services"""
