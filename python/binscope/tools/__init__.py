"""Command line tools built on the binscope decoders."""
