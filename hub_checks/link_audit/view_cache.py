"""
View Link Cache

Simple CLI to view which external URLs are currently trusted.
"""
from .results_cache import print_cache_summary

if __name__ == "__main__":
    print_cache_summary()
