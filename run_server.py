#!/usr/bin/env python3
"""
Run the FareMarket store server in the foreground.
"""

from faremarket.server.json_store import main

if __name__ == '__main__':
    main()
