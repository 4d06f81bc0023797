"""
Allow running BIFROST as a module: python -m bifrost
"""

import asyncio
from bifrost.runner import main

if __name__ == "__main__":
    asyncio.run(main())
