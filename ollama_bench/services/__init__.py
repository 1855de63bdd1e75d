"""Benchmark services"""
