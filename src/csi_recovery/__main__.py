# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from csi_recovery.cli.app import main

if __name__ == "__main__":
    main()
