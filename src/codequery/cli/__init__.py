"""codequery command line interface."""
