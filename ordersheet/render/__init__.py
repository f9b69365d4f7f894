# Template language, cell resolution, sheet rendering and the export column pipeline
