import sys

from shavadoop.worker.slave import main

sys.exit(main())
