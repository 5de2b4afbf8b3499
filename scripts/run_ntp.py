#!/usr/bin/env python3
"""
NTP Prediction Pipeline - Main Entry Point

This script serves as the main entry point with zero business logic.
All processing is delegated to specialized services.
"""

import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ntpredict.application.ntp_prediction_service import NTPPredictionService
from ntpredict.domain.exceptions import ConfigurationError
from ntpredict.infrastructure.argument_parser import ArgumentParser
from ntpredict.infrastructure.logger import Logger


def main(argv=None):
    """Main entry point - no business logic"""
    logger = Logger()

    try:
        logger.log_step("Starting", "NTP Prediction Pipeline")

        # Parse and validate arguments
        logger.log_step("Parsing", "Command line arguments")
        parser = ArgumentParser()
        run_config = parser.parse_arguments(argv)
        if run_config.log_file:
            logger = Logger(log_file=run_config.log_file)

        # Initialize and run prediction service
        logger.log_step("Initializing", "Prediction service")
        service = NTPPredictionService(run_config.prediction)

        logger.log_step("Predicting", run_config.data_file)
        service.run(run_config)

        logger.log_success("Prediction completed successfully")
        print("✅ Prediction completed successfully")
        return 0

    except KeyboardInterrupt:
        logger.log_warning("Prediction interrupted by user")
        print("⚠️ Prediction interrupted by user")
        return 130

    except ConfigurationError as e:
        logger.log_error(e, "Configuration")
        print(f"❌ Invalid configuration: {e}")
        return 2

    except Exception as e:
        logger.log_error(e, "Main execution")
        print(f"❌ Prediction failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
