"""ANT serial stick framing, burst reassembly and device driver."""