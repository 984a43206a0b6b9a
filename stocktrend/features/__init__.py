"""Trend computation engines.

Modules
-------
moving_average    — multi-window moving averages over a newest-first close series
trend_classifier  — one-day trend label, turn, 5-day cross, growth rate and streak
trend_driver      — oldest → newest walk that feeds the classifier its hysteresis window
"""
