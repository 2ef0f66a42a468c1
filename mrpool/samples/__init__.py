# mrpool.samples
# Ready-made map/reduce function pairs. They are defined at module level so
# that process pools can import them in their workers.
