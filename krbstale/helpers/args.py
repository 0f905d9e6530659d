from argparse import ArgumentDefaultsHelpFormatter, SUPPRESS, OPTIONAL, ZERO_OR_MORE, RawTextHelpFormatter


class DisplayDefaultsNotNone(RawTextHelpFormatter, ArgumentDefaultsHelpFormatter):
    """Keep line breaks in help text and only show defaults that carry a value"""

    def _get_help_string(self, action):
        help_string = action.help or ""
        if "%(default)" not in help_string and action.default is not SUPPRESS:
            defaulting_nargs = [OPTIONAL, ZERO_OR_MORE]
            if (action.option_strings or action.nargs in defaulting_nargs) and action.default not in (None, [], {}, "", False):
                help_string += " (default: %(default)s)"
        return help_string
