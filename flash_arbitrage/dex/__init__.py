"""DEX calldata: ABIs, router registry, swap encoders and quoting adapters."""
