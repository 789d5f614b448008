VERBOSITY = {"none": 0, "low": 1, "high": 2}


def verbosity_level(verbose):
    if verbose not in VERBOSITY:
        raise ValueError(f"Invalid verbose: {verbose}. Must be in {list(VERBOSITY)}")
    return VERBOSITY[verbose]


def info(verbose, level, msg=""):
    """
    Prints msg if the requested verbosity is at least `level`.
    """
    if verbosity_level(verbose) >= VERBOSITY[level]:
        print(msg)
