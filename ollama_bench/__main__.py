import sys

from ollama_bench.cli import main

sys.exit(main())
