"""Pure domain rules for priorities"""
