"""Type definitions for Roku Coverage Tools."""

from typing import Callable, List

# Console line consumer: returns True once the end of capture was seen
LineConsumer = Callable[[str], bool]

# Operator echo for console / subprocess output
EchoFn = Callable[[str], None]

# Coverage buffer and tracefile records
CoverageLines = List[str]
CoverageRecord = List[str]
