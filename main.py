"""
Service entry point
 - Single responsibility: Launch the doorbell service
 - Imports and calls service.app.main()
 - Exit code comes from main(): 0 on clean shutdown, 1 on startup failure
"""
import sys
from service.app import main

if __name__ == "__main__":
    sys.exit(main())
