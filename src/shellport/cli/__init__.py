"""Shellport command line interface"""
