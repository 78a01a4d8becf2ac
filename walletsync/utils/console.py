import os
import sys

from colorama import Fore, Style, init
init(autoreset=True)


def _quiet() -> bool:
    return os.getenv("WALLETSYNC_QUIET", "0") == "1"


# --- Unicode-safe print for Windows console ---
def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except UnicodeEncodeError:
        encoding = getattr(sys.stdout, 'encoding', None) or 'utf-8'
        print(*(str(a).encode(encoding, errors='replace').decode(encoding) for a in args), **kwargs)


def print_info(msg):
    if not _quiet():
        safe_print(Fore.CYAN + str(msg) + Style.RESET_ALL)

def print_warn(msg):
    if not _quiet():
        safe_print(Fore.YELLOW + str(msg) + Style.RESET_ALL)

def print_error(msg):
    if not _quiet():
        safe_print(Fore.RED + str(msg) + Style.RESET_ALL)

def print_success(msg):
    if not _quiet():
        safe_print(Fore.GREEN + str(msg) + Style.RESET_ALL)

def print_debug(msg):
    if os.getenv("WALLETSYNC_DEBUG", "0") == "1" and not _quiet():
        safe_print(Fore.MAGENTA + str(msg) + Style.RESET_ALL)
