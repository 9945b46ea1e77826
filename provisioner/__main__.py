# provisioner/__main__.py
# -*- coding: utf-8 -*-
import sys

from provisioner.main_installer import main

sys.exit(main())
