# ricambi/pricing: pricing & discount resolution, kit availability and reservation
