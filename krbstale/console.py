from rich.console import Console

# stdout carries the report, so everything rich renders goes to stderr
ks_console = Console(soft_wrap=True, tab_size=4, stderr=True)
